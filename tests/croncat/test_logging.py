"""Thread coloured log output."""

import logging

from croncat_deploy.utils import ThreadColourFormatter


def _record(thread_name: str) -> logging.LogRecord:
    record = logging.LogRecord("croncat_deploy.pipeline", logging.INFO, __file__, 1, "Uploaded %s", ("tasks",), None)
    record.threadName = thread_name
    return record


def test_threads_get_stable_colours():
    formatter = ThreadColourFormatter(fmt="[%(threadName)s] %(message)s")

    juno = formatter.format(_record("deploy-junotestnet"))
    stars = formatter.format(_record("deploy-stargazetestnet"))

    assert juno.endswith("deploy-junotestnet\033[0m] Uploaded tasks")
    assert juno.split("deploy-")[0] != stars.split("deploy-")[0]
    assert formatter.format(_record("deploy-junotestnet")) == juno


def test_wraps_inner_formatter():
    formatter = ThreadColourFormatter(inner=logging.Formatter("%(threadName)s: %(message)s"))
    record = _record("e2e-osmosistestnet")
    output = formatter.format(record)
    assert output.startswith("\033[1;36me2e-osmosistestnet\033[0m: ")
    assert record.threadName == "e2e-osmosistestnet"
