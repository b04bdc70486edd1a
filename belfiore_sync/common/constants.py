"""Application constants."""

USER_AGENT = "belfiore-sync/0.3 (+geo reference import)"

ITEM_TYPE_COMUNE = "comune"
ITEM_TYPE_STATO = "stato"
ITEM_TYPES = ("comune", "stato", "provincia", "regione", "territorio")
SYNC_TYPES = (ITEM_TYPE_COMUNE, ITEM_TYPE_STATO)
TYPE_ALIASES = {
    "*": SYNC_TYPES,
    '"*"': SYNC_TYPES,
    "all": SYNC_TYPES,
    "comune": (ITEM_TYPE_COMUNE,),
    "comuni": (ITEM_TYPE_COMUNE,),
    "municipalities": (ITEM_TYPE_COMUNE,),
    "stato": (ITEM_TYPE_STATO,),
    "stati": (ITEM_TYPE_STATO,),
    "states": (ITEM_TYPE_STATO,),
}
WILDCARD_PROFILE = "*"
SOURCE_GROUPS = ("csv", "db")
DRIVERS = ("csv", "rst")
SOURCE_TYPES = ("file", "url")
TRANSFORMS = ("date_dmy_slash", "bool_s_n")

ITALY_KEY = "*"
ITALY_NAME = "ITALIA"

EXIT_SUCCESS = 0
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "item_type",
    "profile",
    "source",
    "event",
    "status",
    "rows_in",
    "rows_out",
    "duration_ms",
    "error_code",
    "message",
)
