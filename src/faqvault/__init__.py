"""FAQ Vault - Searchable archive of text game guides with a one-time bootstrap pipeline."""

from faqvault.api import FaqVaultAPI, FaqVaultConfig
from faqvault.models import GuideFormat, InitStage, InitStatus

__all__ = [
    "FaqVaultAPI",
    "FaqVaultConfig",
    "GuideFormat",
    "InitStage",
    "InitStatus",
]
