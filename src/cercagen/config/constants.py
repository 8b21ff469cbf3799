"""Constants shared by the parsers, the ingestion engine and the roll-ups."""

# Document years outside this range are treated as data-entry mistakes
MIN_DOCUMENT_YEAR = 1200
MAX_DOCUMENT_YEAR = 2100

# Quality ranks: higher means less reliable
QUALITY_RANKS: dict[str, int] = {
    "": 0,
    "clear": 1,
    "doubtful": 2,
    "incomplete": 3,
    "illegible": 4,
    "no_record": 5,
}

# Catalan labels used by transcribers, mapped to stored quality values
QUALITY_ALIASES: dict[str, str] = {
    "clear": "clear",
    "clar": "clear",
    "clara": "clear",
    "doubtful": "doubtful",
    "dubtos": "doubtful",
    "dubtosa": "doubtful",
    "incomplete": "incomplete",
    "incomplet": "incomplete",
    "incompleta": "incomplete",
    "illegible": "illegible",
    "ilegible": "illegible",
    "noconsta": "no_record",
    "norecord": "no_record",
}

DEFAULT_QUALITY_MARKERS: dict[str, str] = {
    "doubtful": "?",
    "no_record": "¿",
}

MODERATION_ALIASES: dict[str, str] = {
    "pending": "pending",
    "pendent": "pending",
    "published": "published",
    "publicat": "published",
    "rejected": "rejected",
    "rebutjat": "rejected",
}

RECORD_TYPE_ALIASES: dict[str, str] = {
    "baptism": "baptism",
    "baptisme": "baptism",
    "baptismes": "baptism",
    "bateig": "baptism",
    "marriage": "marriage",
    "matrimoni": "marriage",
    "matrimonis": "marriage",
    "death": "death",
    "obit": "death",
    "obits": "death",
    "defuncio": "death",
    "confirmation": "confirmation",
    "confirmacio": "confirmation",
    "confirmacions": "confirmation",
    "census": "census",
    "padro": "census",
    "padrons": "census",
    "cens": "census",
    "censos": "census",
    "recruitment": "recruitment",
    "reclutament": "recruitment",
    "reclutaments": "recruitment",
    "other": "other",
    "altres": "other",
    "generic": "other",
}

# Record type -> demography bucket; other types contribute nothing
DEMOGRAPHY_BUCKETS: dict[str, str] = {
    "baptism": "births",
    "marriage": "marriages",
    "death": "deaths",
}

# Roles whose names feed the name/surname frequency tables
FREQUENCY_ROLES: dict[str, list[str]] = {
    "baptism": ["batejat"],
    "marriage": ["nuvi", "novia"],
    "death": ["difunt"],
    "confirmation": ["confirmat"],
}

# Surname particles that glue the following token to the current surname
SURNAME_JOINERS = frozenset(
    {"de", "del", "dels", "da", "das", "dos", "do", "du", "van", "von", "di", "della", "d'", "l'", "i"}
)

SURNAME_ARTICLES = frozenset({"la", "el", "els", "les", "los", "las", "l", "l'"})

# Query particles dropped before matching
SEARCH_STOPWORDS = frozenset({"de", "del", "d", "da", "di", "la", "el", "l"})

# Base (header) targets accepted in template mappings
BASE_TARGETS = frozenset(
    {
        "llibre_id",
        "pagina_id",
        "num_pagina_text",
        "posicio_pagina",
        "tipus_acte",
        "any_doc",
        "data_acte_text",
        "data_acte_iso",
        "data_acte_estat",
        "data_acte_iso_text_estat",
        "transcripcio_literal",
        "notes_marginals",
        "observacions_paleografiques",
        "moderation_status",
    }
)

# Person target field -> TranscriptionPerson attribute
PERSON_FIELDS: dict[str, str] = {
    "nom": "given_name",
    "cognom1": "surname1",
    "cognom2": "surname2",
    "cognom_soltera": "maiden_surname",
    "sexe": "sex",
    "edat": "age",
    "estat_civil": "civil_status",
    "municipi": "municipality",
    "ofici": "occupation",
    "casa": "house",
    "notes": "notes",
}

# Header target field -> TranscriptionRecord attribute
RECORD_FIELDS: dict[str, str] = {
    "llibre_id": "book_id",
    "pagina_id": "page_id",
    "num_pagina_text": "page_label",
    "posicio_pagina": "page_position",
    "tipus_acte": "record_type",
    "any_doc": "document_year",
    "data_acte_text": "act_date_text",
    "data_acte_iso": "act_date_iso",
    "data_acte_estat": "act_date_quality",
    "transcripcio_literal": "literal_text",
    "notes_marginals": "marginal_notes",
    "observacions_paleografiques": "paleographic_notes",
    "moderation_status": "moderation_status",
}

ATTRIBUTE_TYPES = frozenset(
    {"text", "int", "int_nullable", "date", "bool", "estat", "text_with_quality", "date_or_text_with_quality"}
)

TRUE_VALUES = frozenset({"1", "true", "si", "sí", "yes", "on"})

# Template limits
MAX_TEMPLATE_COLUMNS = 200
MAX_MAP_TO_ENTRIES = 8
MAX_TRANSFORMS_PER_ENTRY = 12

INDEXING_COLOR_BANDS: list[tuple[int, str]] = [
    (80, "green"),
    (60, "yellow"),
    (30, "orange"),
    (0, "pink"),
]
