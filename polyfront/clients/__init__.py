# Network clients
from .mempool_client import MempoolClient
from .clob_client import CLOBClient, SimulatedCLOBClient, OrderResult
from .data_api_client import DataApiClient
from .polygon_client import PolygonClient

__all__ = ["MempoolClient", "CLOBClient", "SimulatedCLOBClient", "OrderResult", "DataApiClient", "PolygonClient"]
