import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///nurse-scheduler.db")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # "fhir" talks to the upstream HCHB API, "mock" uses bundled sample data
    DATA_SOURCE: str = os.getenv("DATA_SOURCE", "fhir")

    API_BASE_URL: str = os.getenv("API_BASE_URL", "https://api.hchb.com/fhir/r4")
    TOKEN_URL: str = os.getenv("TOKEN_URL", "")
    CLIENT_ID: str = os.getenv("CLIENT_ID", "")
    RESOURCE_SECURITY_ID: str = os.getenv("RESOURCE_SECURITY_ID", "")
    AGENCY_SECRET: str = os.getenv("AGENCY_SECRET", "")
    TOKEN_SCOPE: str = os.getenv(
        "TOKEN_SCOPE", "openid HCHB.api.scope agency.identity hchb.identity"
    )
    TOKEN_TIMEOUT_SECONDS: float = float(os.getenv("TOKEN_TIMEOUT_SECONDS", "60"))
    REQUEST_TIMEOUT_SECONDS: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30"))

    PAGE_SIZE: int = int(os.getenv("PAGE_SIZE", "50"))
    FETCH_CAP: int = int(os.getenv("FETCH_CAP", "500"))
    ID_BATCH_SIZE: int = int(os.getenv("ID_BATCH_SIZE", "50"))


settings = Settings()
