"""Exception hierarchy for FAQ Vault."""


class FaqVaultError(Exception):
    """Base exception for FAQ Vault."""

    def __init__(self, message: str, code: str = "FAQVAULT_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": True, "code": self.code, "message": self.message}


class DownloadError(FaqVaultError, OSError):
    """Archive download failed; no file is left at the destination."""

    def __init__(self, message: str):
        super().__init__(message, code="DOWNLOAD_ERROR")


class ExtractionError(FaqVaultError):
    """The outer archive could not be opened or read."""

    def __init__(self, message: str):
        super().__init__(message, code="EXTRACTION_ERROR")


class UnsupportedFormatError(FaqVaultError):
    """No parser handles the requested guide format."""

    def __init__(self, message: str):
        super().__init__(message, code="UNSUPPORTED_FORMAT")


class MalformedGuideError(FaqVaultError):
    """A guide file could not be read as text."""

    def __init__(self, message: str):
        super().__init__(message, code="MALFORMED_GUIDE")


class SchemaVersionError(FaqVaultError):
    """The database schema is newer than this version of the code."""

    def __init__(self, message: str):
        super().__init__(message, code="SCHEMA_VERSION_ERROR")


class SearchQueryError(FaqVaultError):
    """Full-text search rejected the query."""

    def __init__(self, message: str):
        super().__init__(message, code="SEARCH_QUERY_ERROR")
