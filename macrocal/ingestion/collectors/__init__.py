"""Agency collectors: BLS, ECB, FRED, IMF WEO and World Bank."""

from macrocal.ingestion.collectors.base_collector import (
    BaseCollector,
    DataPoint,
    DateRange,
    MultiCountryCollector,
    SeriesConfig,
)
from macrocal.ingestion.collectors.bls_collector import BLSCollector
from macrocal.ingestion.collectors.ecb_collector import ECBCollector
from macrocal.ingestion.collectors.fred_collector import FREDCollector
from macrocal.ingestion.collectors.imf_collector import IMFCollector
from macrocal.ingestion.collectors.world_bank_collector import WorldBankCollector

COLLECTORS: dict[str, type[BaseCollector]] = {
    "bls": BLSCollector,
    "ecb": ECBCollector,
    "fred": FREDCollector,
    "imf": IMFCollector,
    "world-bank": WorldBankCollector,
}

__all__ = [
    "BaseCollector",
    "MultiCountryCollector",
    "DataPoint",
    "DateRange",
    "SeriesConfig",
    "BLSCollector",
    "ECBCollector",
    "FREDCollector",
    "IMFCollector",
    "WorldBankCollector",
    "COLLECTORS",
]
