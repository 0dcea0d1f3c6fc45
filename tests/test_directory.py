from brokers.clusters import CLUSTER_BROKER_KEYS
from brokers.clusters.infopay import INFOPAY_SITES
from brokers.directory import (
    DATA_BROKER_DIRECTORY,
    get_broker_category,
    get_consolidation_parent,
    get_email_removal_brokers,
    get_opt_out_instructions,
    get_primary_source,
    get_related_sources,
    get_removal_coverage,
    get_subsidiaries,
    is_parent_broker,
    removal_covers_source,
)
from brokers.network import (
    SAME_PARENT_WEIGHT,
    SUBSIDIARY_WEIGHT,
    get_category_projection_targets,
    get_subsidiary_projection_targets,
    is_excluded_from_projection,
)


class TestConsolidation:
    def test_every_cluster_site_is_in_the_directory(self):
        assert all(key in DATA_BROKER_DIRECTORY for key in CLUSTER_BROKER_KEYS)

    def test_cluster_parents(self):
        assert get_consolidation_parent("RECORDSFINDER") == "INFOTRACER"
        assert get_consolidation_parent("SNOOPSTATION") == "INTELIUS"
        assert get_consolidation_parent("CENTEDA") == "RADARIS"

    def test_network_parents(self):
        assert get_consolidation_parent("INSTANTCHECKMATE") == "BEENVERIFIED"
        assert get_consolidation_parent("NEIGHBOR_WHO") == "WHITEPAGES"
        assert get_consolidation_parent("SPOKEO") is None

    def test_subsidiaries(self):
        subsidiaries = get_subsidiaries("INFOTRACER")
        assert set(subsidiaries) == {site.key for site in INFOPAY_SITES}
        assert is_parent_broker("INFOTRACER")
        assert not is_parent_broker("SPOKEO")
        assert get_subsidiaries("UNKNOWN") == []

    def test_cluster_sites_with_privacy_email_support_email_removal(self):
        email_brokers = get_email_removal_brokers()
        assert "RECORDSFINDER" in email_brokers
        assert "VERIFYRECORDS" not in email_brokers


class TestCategories:
    def test_primary_category(self):
        assert get_broker_category("SPOKEO") == "PEOPLE_SEARCH"
        assert get_broker_category("NUWBER") == "PHONE_LOOKUP"
        assert get_broker_category("CENTEDA") == "PEOPLE_SEARCH"

    def test_unindexed_categories(self):
        assert get_broker_category("LINKEDIN") is None
        assert get_broker_category("HAVEIBEENPWNED") is None


class TestSourceGroups:
    def test_related_sources(self):
        assert get_related_sources("BEENVERIFIED") == ["INSTANTCHECKMATE", "PEOPLELOOKER"]
        assert get_related_sources("PEOPLELOOKER") == ["BEENVERIFIED", "INSTANTCHECKMATE"]
        assert get_related_sources("SPOKEO") == []

    def test_removal_coverage(self):
        assert removal_covers_source("WHITEPAGES", "ADDRESSES_COM")
        assert not removal_covers_source("ADDRESSES_COM", "WHITEPAGES")
        assert not removal_covers_source("TRUTHFINDER", "PUBLICRECORDSNOW")

        coverage = get_removal_coverage("BEENVERIFIED")
        assert coverage["total"] == 3
        assert get_removal_coverage("SPOKEO") == {
            "direct_sources": 1, "related_sources": 0, "total": 1, "note": None,
        }

    def test_primary_source(self):
        assert get_primary_source("ZABASEARCH") == "INTELIUS"
        assert get_primary_source("SPOKEO") == "SPOKEO"


class TestInstructions:
    def test_known_broker(self):
        text = get_opt_out_instructions("SPOKEO")
        assert text.startswith("To remove your data from Spokeo:")
        assert "https://www.spokeo.com/optout" in text
        assert "privacy@spokeo.com" in text
        assert "Estimated processing time: 3 days" in text
        assert "Note: Requires verification via email link" in text

    def test_unknown_broker(self):
        assert get_opt_out_instructions("NOPE") == "Contact the source directly to request removal of your data."


class TestNetwork:
    def test_excluded_sources(self):
        assert is_excluded_from_projection("HAVEIBEENPWNED")
        assert is_excluded_from_projection("LINKEDIN")
        assert is_excluded_from_projection("SPYCLOUD")
        assert is_excluded_from_projection("NOT_A_BROKER")
        assert not is_excluded_from_projection("SPOKEO")

    def test_property_records_need_an_address(self):
        without = {t.broker_key for t in get_category_projection_targets("SPOKEO", user_has_address=False)}
        with_address = {t.broker_key for t in get_category_projection_targets("SPOKEO", user_has_address=True)}
        assert "NEIGHBOR_WHO" not in without
        assert "NEIGHBOR_WHO" in with_address
        assert "SPOKEO" not in with_address

    def test_subsidiary_targets(self):
        targets = {t.broker_key: t.weight for t in get_subsidiary_projection_targets("INSTANTCHECKMATE")}
        assert targets["BEENVERIFIED"] == SUBSIDIARY_WEIGHT
        assert targets["PEOPLELOOKER"] == SAME_PARENT_WEIGHT
        assert "INSTANTCHECKMATE" not in targets

    def test_unindexed_source_has_no_category_targets(self):
        assert get_category_projection_targets("LINKEDIN", user_has_address=True) == []
