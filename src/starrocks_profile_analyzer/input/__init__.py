from starrocks_profile_analyzer.input.base import ProfileInput
from starrocks_profile_analyzer.input.files import ProfileFileInput
from starrocks_profile_analyzer.input.manual import ManualInput
from starrocks_profile_analyzer.input.starrocks import StarRocksClient, StarRocksProfileInput

__all__ = [
    "ProfileInput",
    "ManualInput",
    "ProfileFileInput",
    "StarRocksClient",
    "StarRocksProfileInput",
]
