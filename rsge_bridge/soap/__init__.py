from rsge_bridge.soap.client import RsSoapClient, split_date_range
from rsge_bridge.soap.operations import ALLOWED_OPERATIONS, is_allowed

__all__ = ["ALLOWED_OPERATIONS", "RsSoapClient", "is_allowed", "split_date_range"]
