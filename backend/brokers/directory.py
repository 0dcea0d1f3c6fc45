"""Data broker directory - opt-out contacts, removal methods and ownership."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Optional

from brokers.cluster import ClusterSite
from brokers.clusters.infopay import INFOPAY_SITES
from brokers.clusters.peopleconnect import PEOPLECONNECT_SITES
from brokers.clusters.radaris import RADARIS_SITES


class BrokerRemovalMethod(StrEnum):
    FORM = "FORM"
    EMAIL = "EMAIL"
    BOTH = "BOTH"
    MONITOR = "MONITOR"
    NOT_REMOVABLE = "NOT_REMOVABLE"


@dataclass
class DataBrokerInfo:
    """Contact details and removal characteristics of one source."""
    name: str
    removal_method: BrokerRemovalMethod
    estimated_days: int
    opt_out_url: Optional[str] = None
    opt_out_email: Optional[str] = None
    privacy_email: Optional[str] = None
    notes: Optional[str] = None
    # Parent entity whose removal also covers this site
    consolidates_to: Optional[str] = None
    is_removable: bool = True
    category: Optional[str] = None

    def to_dict(self, key: str) -> dict:
        return {
            "key": key,
            "name": self.name,
            "opt_out_url": self.opt_out_url,
            "opt_out_email": self.opt_out_email,
            "privacy_email": self.privacy_email,
            "removal_method": self.removal_method,
            "estimated_days": self.estimated_days,
            "notes": self.notes,
            "consolidates_to": self.consolidates_to,
            "is_removable": self.is_removable,
            "category": self.category,
        }


FORM = BrokerRemovalMethod.FORM
EMAIL = BrokerRemovalMethod.EMAIL
BOTH = BrokerRemovalMethod.BOTH
MONITOR = BrokerRemovalMethod.MONITOR
NOT_REMOVABLE = BrokerRemovalMethod.NOT_REMOVABLE


DATA_BROKER_DIRECTORY: dict[str, DataBrokerInfo] = {
    # Major people search sites
    "SPOKEO": DataBrokerInfo(
        name="Spokeo",
        opt_out_url="https://www.spokeo.com/optout",
        opt_out_email="customercare@spokeo.com",
        privacy_email="privacy@spokeo.com",
        removal_method=BOTH,
        estimated_days=3,
        notes="Requires verification via email link",
    ),
    "WHITEPAGES": DataBrokerInfo(
        name="WhitePages",
        opt_out_url="https://www.whitepages.com/suppression-requests",
        opt_out_email="support@whitepages.com",
        privacy_email="privacy@whitepages.com",
        removal_method=BOTH,
        estimated_days=5,
        notes="May require phone verification",
    ),
    "BEENVERIFIED": DataBrokerInfo(
        name="BeenVerified",
        opt_out_url="https://www.beenverified.com/opt-out/",
        opt_out_email="privacy@beenverified.com",
        privacy_email="privacy@beenverified.com",
        removal_method=BOTH,
        estimated_days=7,
    ),
    "INTELIUS": DataBrokerInfo(
        name="Intelius",
        opt_out_url="https://www.intelius.com/optout",
        opt_out_email="privacy@intelius.com",
        privacy_email="privacy@intelius.com",
        removal_method=BOTH,
        estimated_days=7,
    ),
    "PEOPLEFINDER": DataBrokerInfo(
        name="PeopleFinder",
        opt_out_url="https://www.peoplefinder.com/optout",
        privacy_email="privacy@peoplefinder.com",
        removal_method=FORM,
        estimated_days=5,
    ),
    "TRUEPEOPLESEARCH": DataBrokerInfo(
        name="TruePeopleSearch",
        opt_out_url="https://www.truepeoplesearch.com/removal",
        privacy_email="privacy@truepeoplesearch.com",
        removal_method=FORM,
        estimated_days=1,
        notes="Usually processes within 24 hours",
    ),
    "RADARIS": DataBrokerInfo(
        name="Radaris",
        opt_out_url="https://radaris.com/control/privacy",
        opt_out_email="privacy@radaris.com",
        privacy_email="privacy@radaris.com",
        removal_method=BOTH,
        estimated_days=14,
        notes="May require multiple follow-ups",
    ),
    "FASTPEOPLESEARCH": DataBrokerInfo(
        name="FastPeopleSearch",
        opt_out_url="https://www.fastpeoplesearch.com/removal",
        privacy_email="privacy@fastpeoplesearch.com",
        removal_method=FORM,
        estimated_days=1,
        notes="Automated removal usually quick",
    ),

    # Subsidiaries and networks
    "USSEARCH": DataBrokerInfo(
        name="USSearch",
        opt_out_url="https://www.ussearch.com/opt-out/",
        privacy_email="privacy@ussearch.com",
        removal_method=FORM,
        estimated_days=7,
        consolidates_to="INTELIUS",
    ),
    "ZABASEARCH": DataBrokerInfo(
        name="ZabaSearch",
        opt_out_url="https://www.zabasearch.com/block_records/",
        privacy_email="privacy@zabasearch.com",
        removal_method=FORM,
        estimated_days=7,
        notes="Free people search - requires verification",
        consolidates_to="INTELIUS",
    ),
    "INSTANTCHECKMATE": DataBrokerInfo(
        name="Instant Checkmate",
        opt_out_url="https://www.instantcheckmate.com/opt-out/",
        privacy_email="privacy@instantcheckmate.com",
        removal_method=FORM,
        estimated_days=7,
        notes="Part of the same network as BeenVerified",
        consolidates_to="BEENVERIFIED",
    ),
    "PEOPLELOOKER": DataBrokerInfo(
        name="PeopleLooker",
        opt_out_url="https://www.peoplelooker.com/opt-out",
        privacy_email="privacy@peoplelooker.com",
        removal_method=FORM,
        estimated_days=7,
        consolidates_to="BEENVERIFIED",
    ),
    "ADDRESSES_COM": DataBrokerInfo(
        name="Addresses.com",
        opt_out_url="https://www.addresses.com/optout.php",
        privacy_email="privacy@addresses.com",
        removal_method=FORM,
        estimated_days=5,
        consolidates_to="WHITEPAGES",
    ),
    "NEIGHBOR_WHO": DataBrokerInfo(
        name="Neighbor.Who",
        opt_out_url="https://www.neighborwho.com/removal",
        privacy_email="privacy@neighborwho.com",
        removal_method=FORM,
        estimated_days=5,
        consolidates_to="WHITEPAGES",
    ),
    "INFOTRACER": DataBrokerInfo(
        name="InfoTracer",
        opt_out_url="https://infotracer.com/optout",
        privacy_email="privacy@infotracer.com",
        removal_method=FORM,
        estimated_days=7,
    ),

    # Other people search / background / phone / records
    "PIPL": DataBrokerInfo(
        name="Pipl",
        opt_out_url="https://pipl.com/personal-information-removal-request",
        privacy_email="privacy@pipl.com",
        removal_method=BOTH,
        estimated_days=30,
        notes="May require extensive verification",
    ),
    "PEOPLEFINDERS": DataBrokerInfo(
        name="PeopleFinders",
        opt_out_url="https://www.peoplefinders.com/opt-out",
        privacy_email="privacy@peoplefinders.com",
        removal_method=FORM,
        estimated_days=10,
    ),
    "MYLIFE": DataBrokerInfo(
        name="MyLife",
        opt_out_url="https://www.mylife.com/ccpa/index.pubview",
        opt_out_email="privacy@mylife.com",
        privacy_email="privacy@mylife.com",
        removal_method=BOTH,
        estimated_days=14,
        notes="Use the CCPA data request form - may require identity verification",
    ),
    "PUBLICRECORDSNOW": DataBrokerInfo(
        name="PublicRecordsNow",
        opt_out_url="https://www.publicrecordsnow.com/optout",
        privacy_email="privacy@publicrecordsnow.com",
        removal_method=FORM,
        estimated_days=7,
    ),
    "TRUTHFINDER": DataBrokerInfo(
        name="TruthFinder",
        opt_out_url="https://www.truthfinder.com/opt-out/",
        privacy_email="privacy@truthfinder.com",
        removal_method=FORM,
        estimated_days=14,
        notes="Requires email confirmation",
    ),
    "CHECKPEOPLE": DataBrokerInfo(
        name="CheckPeople",
        opt_out_url="https://www.checkpeople.com/opt-out",
        privacy_email="privacy@checkpeople.com",
        removal_method=FORM,
        estimated_days=7,
    ),
    "ANYWHO": DataBrokerInfo(
        name="AnyWho",
        opt_out_url="https://www.anywho.com/opt-out",
        privacy_email="privacy@anywho.com",
        removal_method=FORM,
        estimated_days=5,
    ),
    "USPHONEBOOK": DataBrokerInfo(
        name="USPhonebook",
        opt_out_url="https://www.usphonebook.com/opt-out",
        privacy_email="privacy@usphonebook.com",
        removal_method=FORM,
        estimated_days=3,
    ),
    "NUWBER": DataBrokerInfo(
        name="Nuwber",
        opt_out_url="https://nuwber.com/removal/link",
        privacy_email="privacy@nuwber.com",
        removal_method=FORM,
        estimated_days=7,
    ),
    "JUDYRECORDS": DataBrokerInfo(
        name="JudyRecords",
        opt_out_url="https://www.judyrecords.com/record-removal",
        privacy_email="privacy@judyrecords.com",
        removal_method=FORM,
        estimated_days=14,
        notes="Court records search - removal may be limited by public records laws",
    ),
    "ZOOMINFO": DataBrokerInfo(
        name="ZoomInfo",
        opt_out_url="https://www.zoominfo.com/update/remove",
        privacy_email="privacy@zoominfo.com",
        removal_method=BOTH,
        estimated_days=30,
        notes="B2B data broker - submit removal request with your email to opt out",
    ),
    "ACXIOM": DataBrokerInfo(
        name="Acxiom",
        opt_out_url="https://isapps.acxiom.com/optout/optout.aspx",
        privacy_email="privacy@acxiom.com",
        removal_method=FORM,
        estimated_days=30,
        notes="One of the largest data brokers",
    ),

    # Breach databases
    "HAVEIBEENPWNED": DataBrokerInfo(
        name="Have I Been Pwned",
        privacy_email="support@haveibeenpwned.com",
        removal_method=NOT_REMOVABLE,
        estimated_days=30,
        notes="HIBP does not remove data - they document breaches. The breach data exists at the original source.",
        is_removable=False,
        category="BREACH_DATABASE",
    ),
    "DEHASHED": DataBrokerInfo(
        name="DeHashed",
        opt_out_url="https://www.dehashed.com/remove",
        privacy_email="support@dehashed.com",
        removal_method=BOTH,
        estimated_days=14,
        category="BREACH_DATABASE",
    ),

    # Dark web and paste monitoring
    "SPYCLOUD": DataBrokerInfo(
        name="SpyCloud",
        opt_out_url="https://spycloud.com/consumer-portal/",
        privacy_email="privacy@spycloud.com",
        removal_method=MONITOR,
        estimated_days=1,
        notes="Dark web breach monitoring and identity exposure alerts",
        is_removable=False,
        category="DARK_WEB",
    ),
    "PASTEBIN_MONITOR": DataBrokerInfo(
        name="Pastebin Monitor",
        opt_out_url="https://pastebin.com/doc_privacy_statement",
        privacy_email="privacy@pastebin.com",
        removal_method=MONITOR,
        estimated_days=1,
        notes="Primary paste site - often used for leaked data",
        is_removable=False,
        category="DARK_WEB",
    ),

    # Social media
    "LINKEDIN": DataBrokerInfo(
        name="LinkedIn",
        opt_out_url="https://www.linkedin.com/help/linkedin/answer/63",
        privacy_email="privacy@linkedin.com",
        removal_method=FORM,
        estimated_days=30,
        notes="Account must be deleted manually through settings",
        category="SOCIAL_MEDIA",
    ),
    "FACEBOOK": DataBrokerInfo(
        name="Facebook",
        opt_out_url="https://www.facebook.com/help/delete_account",
        privacy_email="privacy@fb.com",
        removal_method=FORM,
        estimated_days=30,
        notes="Account deletion requires 30-day waiting period",
        category="SOCIAL_MEDIA",
    ),
    "TWITTER": DataBrokerInfo(
        name="Twitter/X",
        opt_out_url="https://twitter.com/settings/deactivate",
        privacy_email="privacy@twitter.com",
        removal_method=FORM,
        estimated_days=30,
        notes="Deactivation required before permanent deletion",
        category="SOCIAL_MEDIA",
    ),
}


def _add_cluster_sites(sites: list[ClusterSite], parent: str, estimated_days: int) -> None:
    for site in sites:
        DATA_BROKER_DIRECTORY[site.key] = DataBrokerInfo(
            name=site.name,
            opt_out_url=site.opt_out_url,
            privacy_email=site.privacy_email,
            removal_method=BOTH if site.privacy_email else FORM,
            estimated_days=estimated_days,
            consolidates_to=parent,
        )


_add_cluster_sites(INFOPAY_SITES, "INFOTRACER", 7)
_add_cluster_sites(PEOPLECONNECT_SITES, "INTELIUS", 3)
_add_cluster_sites(RADARIS_SITES, "RADARIS", 7)


BROKER_CATEGORIES: dict[str, list[str]] = {
    "PEOPLE_SEARCH": [
        "SPOKEO", "WHITEPAGES", "BEENVERIFIED", "INTELIUS", "PEOPLEFINDER",
        "TRUEPEOPLESEARCH", "RADARIS", "FASTPEOPLESEARCH", "USSEARCH", "PIPL",
        "INSTANTCHECKMATE", "PEOPLELOOKER", "PEOPLEFINDERS", "PUBLICRECORDSNOW",
        "MYLIFE", "ZABASEARCH", "INFOTRACER",
        *(site.key for site in INFOPAY_SITES),
        *(site.key for site in PEOPLECONNECT_SITES),
        *(site.key for site in RADARIS_SITES),
    ],
    "BACKGROUND_CHECK": ["TRUTHFINDER", "CHECKPEOPLE"],
    "COURT_RECORDS": ["JUDYRECORDS"],
    "PHONE_LOOKUP": ["ANYWHO", "NUWBER", "USPHONEBOOK", "ADDRESSES_COM"],
    "PROPERTY_RECORDS": ["NEIGHBOR_WHO"],
    "PROFESSIONAL_B2B": ["ZOOMINFO"],
    "MARKETING": ["ACXIOM"],
    "BREACH_DATABASE": ["HAVEIBEENPWNED", "DEHASHED"],
    "DARK_WEB_MONITORING": ["SPYCLOUD"],
    "PASTE_SITE_MONITORS": ["PASTEBIN_MONITOR"],
    "SOCIAL_MEDIA": ["LINKEDIN", "FACEBOOK", "TWITTER"],
}

# Categories a broker can be projected from or onto, in lookup order
INDEXED_CATEGORIES = [
    "PEOPLE_SEARCH", "PHONE_LOOKUP", "BACKGROUND_CHECK",
    "COURT_RECORDS", "PROPERTY_RECORDS", "PROFESSIONAL_B2B", "MARKETING",
]

_category_by_broker = {
    broker: category
    for category in reversed(INDEXED_CATEGORIES)
    for broker in BROKER_CATEGORIES[category]
}


def get_data_broker_info(source: str) -> Optional[DataBrokerInfo]:
    return DATA_BROKER_DIRECTORY.get(source)


def get_broker_category(source: str) -> Optional[str]:
    """Primary category of a broker, or None when it isn't indexed."""
    return _category_by_broker.get(source)


def get_brokers_by_category(category: str) -> list[DataBrokerInfo]:
    return [
        DATA_BROKER_DIRECTORY[key]
        for key in BROKER_CATEGORIES.get(category, [])
        if key in DATA_BROKER_DIRECTORY
    ]


def get_opt_out_instructions(source: str) -> str:
    broker = DATA_BROKER_DIRECTORY.get(source)
    if not broker:
        return "Contact the source directly to request removal of your data."

    instructions = f"To remove your data from {broker.name}:\n\n"
    if broker.opt_out_url:
        instructions += f"1. Visit their opt-out page: {broker.opt_out_url}\n"
    if broker.privacy_email:
        instructions += f"2. Or email their privacy team: {broker.privacy_email}\n"
    instructions += f"\nEstimated processing time: {broker.estimated_days} days"
    if broker.notes:
        instructions += f"\n\nNote: {broker.notes}"
    return instructions


def get_subsidiaries(source: str) -> list[str]:
    """Sites whose removal is covered by removing from source."""
    return [key for key, info in DATA_BROKER_DIRECTORY.items() if info.consolidates_to == source]


def get_consolidation_parent(source: str) -> Optional[str]:
    info = DATA_BROKER_DIRECTORY.get(source)
    return info.consolidates_to if info else None


def is_parent_broker(source: str) -> bool:
    return bool(get_subsidiaries(source))


def get_email_removal_brokers() -> dict[str, DataBrokerInfo]:
    return {
        key: info for key, info in DATA_BROKER_DIRECTORY.items()
        if info.removal_method in (EMAIL, BOTH)
    }


def get_form_removal_brokers() -> dict[str, DataBrokerInfo]:
    return {
        key: info for key, info in DATA_BROKER_DIRECTORY.items()
        if info.removal_method in (FORM, BOTH)
    }


# --- Source groups ---
# Groups of sources owned by one company or sharing one data feed. When
# single_removal_covers is set, removing from the primary removes from all.

@dataclass
class SourceGroup:
    id: str
    name: str
    description: str
    primary_source: str
    removal_note: str
    single_removal_covers: bool
    related_sources: list[str] = field(default_factory=list)


SOURCE_GROUPS = [
    SourceGroup(
        id="pdl-network",
        name="People Data Labs Network",
        description="BeenVerified, Instant Checkmate, and PeopleLooker are owned by the same parent company",
        primary_source="BEENVERIFIED",
        related_sources=["INSTANTCHECKMATE", "PEOPLELOOKER"],
        removal_note="Removing from BeenVerified typically removes from Instant Checkmate and PeopleLooker within 7-14 days",
        single_removal_covers=True,
    ),
    SourceGroup(
        id="whitepages-network",
        name="Whitepages Network",
        description="Whitepages owns multiple people search properties",
        primary_source="WHITEPAGES",
        related_sources=["ADDRESSES_COM", "NEIGHBOR_WHO"],
        removal_note="Whitepages opt-out covers their network of sites",
        single_removal_covers=True,
    ),
    SourceGroup(
        id="intelius-network",
        name="Intelius/PeopleConnect Network",
        description="Intelius, USSearch, and related sites are owned by PeopleConnect",
        primary_source="INTELIUS",
        related_sources=["USSEARCH", "CLASSMATES", "ZABASEARCH"],
        removal_note="Intelius opt-out covers USSearch and related PeopleConnect properties",
        single_removal_covers=True,
    ),
    SourceGroup(
        id="truthfinder-network",
        name="TruthFinder Network",
        description="TruthFinder and related background check sites",
        primary_source="TRUTHFINDER",
        related_sources=["PUBLICRECORDSNOW"],
        removal_note="TruthFinder shares data with related sites",
        single_removal_covers=False,
    ),
    SourceGroup(
        id="zoominfo-network",
        name="B2B Data Network",
        description="Professional data brokers that share business contact information",
        primary_source="ZOOMINFO",
        related_sources=["APOLLO", "LUSHA", "ROCKETREACH", "CLEARBIT"],
        removal_note="B2B data brokers often share sources - remove from each for complete coverage",
        single_removal_covers=False,
    ),
]

_group_by_source: dict[str, SourceGroup] = {}
for _group in SOURCE_GROUPS:
    _group_by_source[_group.primary_source] = _group
    for _source in _group.related_sources:
        _group_by_source[_source] = _group


def get_source_group(source: str) -> Optional[SourceGroup]:
    return _group_by_source.get(source)


def get_related_sources(source: str) -> list[str]:
    group = get_source_group(source)
    if not group:
        return []
    return [s for s in [group.primary_source, *group.related_sources] if s != source]


def removal_covers_source(primary_source: str, related_source: str) -> bool:
    group = get_source_group(primary_source)
    if not group or group.primary_source != primary_source or not group.single_removal_covers:
        return False
    return related_source in group.related_sources


def get_primary_source(source: str) -> str:
    group = get_source_group(source)
    return group.primary_source if group else source


def get_removal_coverage(source: str) -> dict:
    """How many sources one removal from source is expected to clear."""
    group = get_source_group(source)
    if not group:
        return {"direct_sources": 1, "related_sources": 0, "total": 1, "note": None}

    if group.primary_source == source and group.single_removal_covers:
        return {
            "direct_sources": 1,
            "related_sources": len(group.related_sources),
            "total": 1 + len(group.related_sources),
            "note": group.removal_note,
        }

    return {"direct_sources": 1, "related_sources": 0, "total": 1, "note": group.removal_note}
