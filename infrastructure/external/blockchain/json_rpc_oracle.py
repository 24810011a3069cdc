"""
JSON-RPC 确认数查询

确认数 = 当前区块高度 - 交易所在区块 + 1；交易未上链、RPC 异常时返回 0。
同一网络可配置多个 RPC 节点，按顺序故障转移。
"""
import itertools
from typing import Any, Dict, List, Optional

import httpx

from core.config import settings
from core.logging_config import get_logger
from infrastructure.external.api_clients.base import APIError, BaseAPIClient


logger = get_logger(__name__)


class JsonRpcError(APIError):
    """节点返回了 JSON-RPC error 对象"""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class JsonRpcClient(BaseAPIClient):
    """以太坊兼容节点的最小 JSON-RPC 客户端"""

    _ids = itertools.count(1)

    async def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        response = await self.post(json_data=payload)
        body = response.json()
        if not isinstance(body, dict):
            raise JsonRpcError(f"Malformed JSON-RPC response for {method}")
        if body.get("error"):
            error = body["error"]
            raise JsonRpcError(str(error.get("message", error)), code=error.get("code"))
        return body.get("result")


def _hex_to_int(value: str) -> int:
    return int(value, 16)


class JsonRpcConfirmationOracle:
    """
    ConfirmationOracle 的 JSON-RPC 实现

    查询顺序：eth_getTransactionReceipt → eth_blockNumber。
    """

    def __init__(
        self,
        rpc_urls: Optional[Dict[str, List[str]]] = None,
        *,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        cfg = settings.blockchain
        if rpc_urls is None:
            rpc_urls = {
                "polygon": list(cfg.polygon_rpc_urls),
                "ethereum": list(cfg.ethereum_rpc_urls),
            }
        timeout = cfg.timeout_seconds if timeout is None else timeout
        max_retries = cfg.max_retries if max_retries is None else max_retries
        self._clients: Dict[str, List[JsonRpcClient]] = {
            network: [
                JsonRpcClient(url, timeout=timeout, max_retries=max_retries, transport=transport)
                for url in urls
            ]
            for network, urls in rpc_urls.items()
        }

    async def get_confirmations(self, network: str, tx_hash: str) -> int:
        clients = self._clients.get(network)
        if not clients:
            logger.warning("confirmation_oracle_unknown_network", network=network)
            return 0

        for client in clients:
            try:
                return await self._query(client, tx_hash)
            except APIError as exc:
                logger.warning(
                    "confirmation_oracle_provider_error",
                    network=network,
                    provider=client.base_url,
                    tx_hash=tx_hash,
                    error=str(exc),
                )
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(
                    "confirmation_oracle_bad_response",
                    network=network,
                    provider=client.base_url,
                    tx_hash=tx_hash,
                    error=str(exc),
                )
        logger.error("confirmation_oracle_all_providers_failed", network=network, tx_hash=tx_hash)
        return 0

    async def _query(self, client: JsonRpcClient, tx_hash: str) -> int:
        receipt = await client.call("eth_getTransactionReceipt", [tx_hash])
        if not receipt or not receipt.get("blockNumber"):
            return 0
        # 交易回滚（status=0x0）视为未确认
        if receipt.get("status") == "0x0":
            logger.warning("confirmation_oracle_tx_reverted", tx_hash=tx_hash)
            return 0
        head = _hex_to_int(await client.call("eth_blockNumber"))
        block = _hex_to_int(receipt["blockNumber"])
        return max(0, head - block + 1)

    async def close(self) -> None:
        for clients in self._clients.values():
            for client in clients:
                await client.close()
