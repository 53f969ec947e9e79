"""End-to-end lifecycle scenario against a deployed CronCat instance.

Drives several participants through the agent and task lifecycle and checks
the contracts react as expected:

1. agent1 registers and is immediately ``active``
2. the factory creates a recurring tick task, deployer creates a funded task
3. agent2 registers and waits as ``pending``
4. two more funded tasks make room for agent2, which becomes ``nominated``
5. agent2 checks in and becomes ``active``
6. both agents execute due tasks and withdraw rewards
7. both agents unregister, no agents are left
8. all user tasks are removed, the factory tick task stays

Every step is wrapped: a failure is logged with the chain's rejection text,
recorded in the :py:class:`ValidationReport`, and later steps still run.
The overall verdict passes only if every step passed.

How many tasks it takes to nominate a pending agent depends on the agents
contract configuration. We create the tasks and then poll the status,
we do not compute the threshold.
"""

import logging
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Callable

from tabulate import tabulate

from croncat_deploy.client import coins
from croncat_deploy.contracts import AgentsClient, ManagerClient, TasksClient
from croncat_deploy.errors import CroncatDeployError, TimedOut, ValidatorAssertionFailure
from croncat_deploy.registry import FactoryClient
from croncat_deploy.retry import DEFAULT_RETRY_CONFIG, RetryConfig
from croncat_deploy.sample_tasks import build_bank_send_task, build_tick_task, generate_task_variants
from croncat_deploy.session import NetworkSession

logger = logging.getLogger(__name__)

#: Funds attached to the factory tick task
TICK_TASK_FUNDS = 60_000

#: (amount sent per execution, funds attached) for the deployer's bank send tasks
BANK_SEND_TASKS = [(1, 100_000), (2, 260_000), (3, 460_000)]

#: Funds attached to each task variant
TASK_VARIANT_FUNDS = 250_000

#: How long to wait for agent2 nomination, seconds
DEFAULT_NOMINATION_TIMEOUT = 120.0


@dataclass(slots=True)
class StepResult:
    """Outcome of one scenario step."""

    name: str
    passed: bool
    message: str = ""
    timed_out: bool = False


@dataclass(slots=True)
class ValidationReport:
    """All step outcomes for one network."""

    chain_name: str
    steps: list[StepResult] = field(default_factory=list)

    def is_passed(self) -> bool:
        return len(self.steps) > 0 and all(s.passed for s in self.steps)

    def get_failures(self) -> list[StepResult]:
        return [s for s in self.steps if not s.passed]

    def format_table(self) -> str:
        rows = [
            {
                "step": s.name,
                "result": "SUCCESS" if s.passed else ("TIMEOUT" if s.timed_out else "ERROR"),
                "message": s.message[:120],
            }
            for s in self.steps
        ]
        return tabulate(rows, headers="keys", tablefmt="fancy_grid")


def poll_agent_status(
    agents: AgentsClient,
    address: str,
    expected: str,
    timeout: float,
    retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
) -> str:
    """Wait until an agent reaches a status.

    Sleeps between polls grow with the retry config backoff.

    :raise TimedOut:
        Status not reached in ``timeout`` seconds. ``last_observed`` holds the last status seen.
    """
    started = time.time()
    delays = retry_config.get_delays()
    attempt = 0
    while True:
        attempt += 1
        status = agents.get_agent_status(address)
        logger.debug("Agent %s status %s on poll %d, waiting for %s", address, status, attempt, expected)
        if status == expected:
            return status

        if time.time() - started >= timeout:
            raise TimedOut(f"Agent {address} still {status} after {timeout}s, expected {expected}", last_observed=status)

        # Never sleep past the deadline
        time.sleep(min(next(delays), max(0.0, timeout - (time.time() - started))))


class LifecycleValidator:
    """Run the lifecycle scenario on one session.

    :param factory_address:
        Deployed factory, everything else is looked up from its registry

    :param nomination_timeout:
        Bound for waiting agent2 to be nominated
    """

    def __init__(
        self,
        session: NetworkSession,
        factory_address: str,
        retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
        nomination_timeout=DEFAULT_NOMINATION_TIMEOUT,
    ):
        self.session = session
        self.factory = FactoryClient(session, factory_address, retry_config=retry_config)
        self.retry_config = retry_config
        self.nomination_timeout = nomination_timeout
        self.report = ValidationReport(chain_name=session.chain_name)
        self.manager: ManagerClient | None = None
        self.tasks: TasksClient | None = None
        self.agents: AgentsClient | None = None
        self.current_height: int | None = None

    def __repr__(self):
        return f"<LifecycleValidator {self.session.chain_name} factory:{self.factory.address}>"

    def resolve_contracts(self):
        """Find manager, tasks and agents through the factory registry.

        :raise ValidatorAssertionFailure:
            One of them is not registered
        """
        versions = self.factory.latest_versions()
        missing = [name for name in ("manager", "tasks", "agents") if name not in versions]
        if missing:
            raise ValidatorAssertionFailure(f"Missing deployed contracts for {self.session.network.pretty_name}: {missing}, deploy again")

        self.manager = ManagerClient(self.session, versions["manager"].contract_addr)
        self.tasks = TasksClient(self.session, versions["tasks"].contract_addr)
        self.agents = AgentsClient(self.session, versions["agents"].contract_addr)

    def run_step(self, name: str, func: Callable[[], str | None]) -> bool:
        """Run one step and record the outcome.

        :param func:
            Returns an optional message for the report, raises on failure
        """
        try:
            message = func() or ""
        except TimedOut as e:
            logger.error("%s on %s TIMEOUT: %s", name, self.session.chain_name, e)
            self.report.steps.append(StepResult(name, passed=False, message=str(e), timed_out=True))
            return False
        except CroncatDeployError as e:
            logger.error("%s on %s ERROR: %s", name, self.session.chain_name, e)
            self.report.steps.append(StepResult(name, passed=False, message=str(e)))
            return False
        except Exception as e:
            # Unexpected response shapes from a contract version we do not know
            logger.exception("%s on %s ERROR: %s", name, self.session.chain_name, e)
            self.report.steps.append(StepResult(name, passed=False, message=f"{e.__class__.__name__}: {e}"))
            return False

        logger.info("%s on %s SUCCESS %s", name, self.session.chain_name, message)
        self.report.steps.append(StepResult(name, passed=True, message=message))
        return True

    def expect_agent_status(self, role: str, expected: str) -> str:
        status = self.agents.get_agent_status(self.session.get_address(role))
        if status != expected:
            raise ValidatorAssertionFailure(f"{role} status is {status}, expected {expected}")
        return f"{role} is {status}"

    def register_agent(self, role: str) -> str:
        result = self.agents.register_agent(self.session.get_address(role))
        return f"tx {result.txhash}"

    def create_tick_task(self) -> str:
        task = build_tick_task(self.agents.address)
        result = self.factory.proxy_call(
            self.tasks.address,
            {"create_task": {"task": task}},
            funds=coins(TICK_TASK_FUNDS, self.session.fee_denom),
        )
        return f"tx {result.txhash}"

    def create_bank_send_task(self, amount: int, funds: int) -> str:
        task = build_bank_send_task(self.manager.address, amount, self.session.fee_denom)
        result = self.tasks.create_task(self.session.deployer, task, coins(funds, self.session.fee_denom))
        return f"task {TasksClient.get_created_task_hash(result)}"

    def create_task_variant(self, task: dict) -> str:
        result = self.tasks.create_task(self.session.deployer, task, coins(TASK_VARIANT_FUNDS, self.session.fee_denom))
        return f"task {TasksClient.get_created_task_hash(result)}"

    def wait_nomination(self, role: str) -> str:
        status = poll_agent_status(
            self.agents,
            self.session.get_address(role),
            "nominated",
            self.nomination_timeout,
            self.retry_config,
        )
        return f"{role} is {status}"

    def check_in(self, role: str) -> str:
        result = self.agents.check_in_agent(self.session.get_address(role))
        return f"tx {result.txhash}"

    def proxy_call(self, role: str) -> str:
        result = self.manager.proxy_call(self.session.get_address(role))
        return f"tx {result.txhash}"

    def withdraw_rewards(self, role: str) -> str:
        address = self.session.get_address(role)
        agent = self.agents.get_agent(address)
        if agent is None:
            raise ValidatorAssertionFailure(f"{role} is not registered, cannot withdraw")
        reward = int(agent.get("balance") or 0)
        if reward <= 0:
            return f"{role} has no rewards to withdraw"
        result = self.manager.agent_withdraw(address)
        return f"{role} withdrew {reward}, tx {result.txhash}"

    def unregister(self, role: str) -> str:
        result = self.agents.unregister_agent(self.session.get_address(role))
        return f"tx {result.txhash}"

    def expect_no_agents(self) -> str:
        ids = self.agents.get_agent_ids()
        if ids["active"] or ids["pending"]:
            raise ValidatorAssertionFailure(f"Agents left after unregistering: {ids}")
        return "no agents"

    def remove_user_tasks(self) -> list[str]:
        """Remove every task not owned by the factory.

        :return:
            Removed task hashes
        """
        tasks = self.tasks.get_tasks()
        if not tasks:
            raise ValidatorAssertionFailure("No tasks found")

        own_addresses = set(self.session.accounts.values())
        removed = []
        failures = []
        for task in tasks:
            owner = task["owner_addr"]
            task_hash = task["task_hash"]
            if owner == self.factory.address:
                continue
            if owner not in own_addresses:
                failures.append(f"{task_hash} owned by unknown {owner}")
                continue
            try:
                self.tasks.remove_task(owner, task_hash)
            except CroncatDeployError as e:
                logger.error("Task Remove %s ERROR: %s", task_hash, e)
                failures.append(f"{task_hash}: {e}")
                continue
            logger.info("Task Remove %s SUCCESS", task_hash)
            removed.append(task_hash)

        if failures:
            raise ValidatorAssertionFailure(f"Could not remove {len(failures)} tasks: {failures}")
        return removed

    def cleanup_tasks(self) -> str:
        removed = self.remove_user_tasks()
        remaining = {t["task_hash"] for t in self.tasks.get_tasks()}
        still_there = remaining.intersection(removed)
        if still_there:
            raise ValidatorAssertionFailure(f"Removed tasks still listed: {sorted(still_there)}")
        return f"removed {len(removed)} tasks"

    def run(self) -> ValidationReport:
        """Run the whole scenario."""
        logger.info("Starting %s end to end checks", self.session.network.pretty_name)

        if not self.run_step("Resolve contracts", self.resolve_contracts):
            return self.report

        self.run_step("Agent 1 Register", lambda: self.register_agent("agent1"))
        self.run_step("Agent 1 Status active", lambda: self.expect_agent_status("agent1", "active"))

        self.run_step("Factory Tick Task Create", self.create_tick_task)
        self.run_step("Task 1 Create", partial(self.create_bank_send_task, *BANK_SEND_TASKS[0]))

        self.run_step("Agent 2 Register", lambda: self.register_agent("agent2"))
        self.run_step("Agent 2 Status pending", lambda: self.expect_agent_status("agent2", "pending"))

        for idx, (amount, funds) in enumerate(BANK_SEND_TASKS[1:], start=2):
            self.run_step(f"Task {idx} Create", partial(self.create_bank_send_task, amount, funds))
        self.run_step("Agent 2 Nominated", lambda: self.wait_nomination("agent2"))

        self.run_step("Agent 2 Check In", lambda: self.check_in("agent2"))
        self.run_step("Agent 2 Status active", lambda: self.expect_agent_status("agent2", "active"))

        self.run_step("Agent 1 Proxy Call", lambda: self.proxy_call("agent1"))
        self.run_step("Agent 2 Proxy Call", lambda: self.proxy_call("agent2"))
        self.run_step("Agent 1 Withdraw", lambda: self.withdraw_rewards("agent1"))
        self.run_step("Agent 2 Withdraw", lambda: self.withdraw_rewards("agent2"))

        self.run_step("Agent 1 Unregister", lambda: self.unregister("agent1"))
        self.run_step("Agent 2 Unregister", lambda: self.unregister("agent2"))
        self.run_step("Agents List Empty", self.expect_no_agents)

        self.run_step("Tasks Cleanup", self.cleanup_tasks)

        return self.report

    def read_chain_height(self) -> str:
        """Height that block boundaries of task variants are relative to."""
        self.current_height = self.session.querier.get_latest_block_height()
        return f"height {self.current_height}"

    def run_task_variants(self) -> ValidationReport:
        """Create one task per sample interval and boundary, then remove them all."""
        logger.info("Starting %s task variant checks", self.session.network.pretty_name)

        if not self.run_step("Resolve contracts", self.resolve_contracts):
            return self.report

        if not self.run_step("Chain Height", self.read_chain_height):
            return self.report

        variants = generate_task_variants(self.manager.address, 1, self.session.fee_denom, self.current_height)
        for idx, task in enumerate(variants, start=1):
            label = f"Task Variant {idx} interval={task['interval']} boundary={task['boundary']}"
            self.run_step(label, partial(self.create_task_variant, task))

        self.run_step("Tasks Cleanup", self.cleanup_tasks)
        return self.report


def run_lifecycle_validation(
    session: NetworkSession,
    factory_address: str,
    retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
    nomination_timeout=DEFAULT_NOMINATION_TIMEOUT,
) -> ValidationReport:
    """Run the lifecycle scenario, see module docs."""
    return LifecycleValidator(session, factory_address, retry_config, nomination_timeout).run()


def run_task_variants(
    session: NetworkSession,
    factory_address: str,
    retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
) -> ValidationReport:
    """Sweep task interval and boundary variants."""
    return LifecycleValidator(session, factory_address, retry_config).run_task_variants()
