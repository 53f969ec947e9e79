"""Pick the fastest live RPC endpoint.

All candidates are probed concurrently and the first one to answer
``GET <endpoint>/status`` with a 2xx status wins. Slower probes
are left to finish in the background and their results are ignored.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed

import requests

from croncat_deploy.errors import NoLiveEndpoint

logger = logging.getLogger(__name__)

#: Tendermint RPC status path
DEFAULT_PROBE_PATH = "/status"

#: Per candidate probe timeout, seconds
DEFAULT_PROBE_TIMEOUT = 10.0


def probe_endpoint(endpoint: str, probe_path=DEFAULT_PROBE_PATH, timeout=DEFAULT_PROBE_TIMEOUT) -> str:
    """Probe one endpoint.

    :return:
        The endpoint URL without trailing slash

    :raise requests.RequestException:
        Endpoint did not answer, timed out or returned non-2xx.
    """
    endpoint = endpoint.rstrip("/")
    response = requests.get(f"{endpoint}{probe_path}", timeout=timeout)
    response.raise_for_status()
    return endpoint


def select_live_endpoint(
    endpoints: list[str] | tuple[str, ...],
    probe_path=DEFAULT_PROBE_PATH,
    timeout=DEFAULT_PROBE_TIMEOUT,
) -> str:
    """Race all candidate endpoints and return the first to answer.

    No retries at this layer: one probe per candidate.

    :param endpoints:
        Candidate RPC base URLs

    :param timeout:
        Per candidate HTTP timeout in seconds

    :raise NoLiveEndpoint:
        Candidate list is empty or every probe failed.
    """
    if not endpoints:
        raise NoLiveEndpoint("No candidate RPC endpoints given")

    errors = {}
    executor = ThreadPoolExecutor(max_workers=len(endpoints), thread_name_prefix="rpc-probe")
    try:
        futures = {executor.submit(probe_endpoint, e, probe_path, timeout): e for e in endpoints}
        for future in as_completed(futures):
            endpoint = futures[future]
            try:
                winner = future.result()
            except requests.RequestException as e:
                logger.info("RPC endpoint %s failed probe: %s", endpoint, e)
                errors[endpoint] = e
                continue
            logger.info("RPC endpoint won the race: %s", winner)
            return winner
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    details = "\n".join(f"{e}: {err}" for e, err in errors.items())
    raise NoLiveEndpoint(f"None of {len(endpoints)} RPC endpoints answered:\n{details}")
