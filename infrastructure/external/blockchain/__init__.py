"""区块链确认数查询适配器"""
from .json_rpc_oracle import JsonRpcClient, JsonRpcConfirmationOracle, JsonRpcError

__all__ = ["JsonRpcClient", "JsonRpcConfirmationOracle", "JsonRpcError"]
