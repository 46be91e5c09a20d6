import logging
import sys
import time
from typing import Optional

import yaml

default_config = dict(
    POLLING_INTERVAL=4.0,  # seconds between eth_blockNumber polls
    RPC_TIMEOUT=60,  # HTTP timeout in seconds
    MAX_BLOCK_BACKLOG=1000,  # most "block" events emitted for one poll
    MAX_LOG_BACKLOG=60,  # widest empty range kept by the eth_getLogs fallback
    LOG_LEVEL="INFO",
)


def load_config(path: Optional[str] = None) -> dict:
    config = dict(default_config)
    if path is None:
        return config
    with open(path, encoding="utf-8") as f:
        overrides = yaml.safe_load(f) or {}
    if not isinstance(overrides, dict):
        raise ValueError("config file %s must contain a mapping" % path)
    for key, value in overrides.items():
        key = str(key).upper()
        if key not in default_config:
            raise ValueError("unknown config key %s in %s" % (key, path))
        config[key] = value
    return config


def start_logging(loglevel="INFO", logfile: Optional[str] = None, trace_rpc=False) -> logging.Logger:
    log = logging.getLogger("FilterSubscriber")
    log.setLevel(logging.DEBUG)
    # User can provide log level as a number or string (eg DEBUG)
    ll = int(loglevel) if str(loglevel).isdigit() else str(loglevel).upper()
    # Format logs with microprecision so that log files can be concatenated and sorted
    formatter = logging.Formatter(
        fmt='%(asctime)s.%(msecs)03d000Z %(name)s (%(levelname)s): %(message)s',
        datefmt='%Y-%m-%dT%H:%M:%S')
    formatter.converter = time.gmtime
    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(ll)
    ch.setFormatter(formatter)
    log.addHandler(ch)
    if logfile is not None:
        fh = logging.FileHandler(logfile, encoding='utf-8')
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(formatter)
        log.addHandler(fh)

    if trace_rpc:
        rpc_logger = logging.getLogger("FilterSubscriberRPC")
        rpc_logger.setLevel(logging.DEBUG)
        rpc_handler = logging.StreamHandler(sys.stdout)
        rpc_handler.setLevel(logging.DEBUG)
        rpc_logger.addHandler(rpc_handler)
    return log
