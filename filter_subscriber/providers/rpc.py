import logging
from typing import Any

from jsonrpcclient import request, Error, Ok, parse
from requests import Session

rpc_logger = logging.getLogger("FilterSubscriberRPC")


class ReceivedErrorResponseError(Exception):
    def __init__(self, error: Error):
        self.response = error

    def __str__(self):
        return f"JSONRPCError(code={self.response.code}, message={self.response.message}, data={self.response.data})"


class SimpleRpcProxy:
    def __init__(self, url, timeout):
        self.url = url
        self.timeout = timeout
        self.session = Session()

    def __getattr__(self, name):
        return RpcCaller(self.session, self.url, name, self.timeout)

    def close(self):
        self.session.close()


class RpcCaller:
    def __init__(self, session: Session, url: str, method: str, timeout: float):
        self.session = session
        self.url = url
        self.method = method
        self.timeout = timeout

    def __call__(self, *args, **argsn) -> Any:
        if argsn:
            raise ValueError('json rpc 2 only supports array arguments')

        rpc_logger.debug("-> %s %s", self.method, list(args))
        response = self.session.post(
            url=self.url,
            json=request(self.method, params=args),
            timeout=self.timeout
        )
        parsed = parse(response.json())
        if isinstance(parsed, Ok):
            rpc_logger.debug("<- %s %s", self.method, parsed.result)
            return parsed.result
        else:
            rpc_logger.debug("<- %s error code %s: %s", self.method, parsed.code, parsed.message)
            raise ReceivedErrorResponseError(parsed)  # type: ignore
