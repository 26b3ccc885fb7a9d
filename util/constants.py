class InternalURIs:
    API = "/api"
    V1 = API + "/v1"
    CHAT = V1 + "/chat"
    CHAT_STREAM = V1 + "/chat/stream"
    FAQ = V1 + "/faq"
    FAQ_IMPORT = V1 + "/faq/import"
    FAQ_IMPORT_PDF = V1 + "/faq/import/pdf"
    FAQ_IMPORT_URL = V1 + "/faq/import/url"
    FEEDBACK = V1 + "/feedback"
    HEALTH = V1 + "/health"
    RELOAD_INTENTS = V1 + "/admin/reload-intents"


class Headers:
    PRODUCT = "x-product"
    FORWARDED_FOR = "x-forwarded-for"
    USER_AGENT = "user-agent"


DEFAULT_PRODUCT = "default"
