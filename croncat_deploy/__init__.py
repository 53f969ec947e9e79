"""Deploy CronCat contracts to CosmWasm chains and validate the agent and task lifecycle.

- :py:mod:`croncat_deploy.session` opens a connection to one network
- :py:mod:`croncat_deploy.pipeline` deploys the contracts through the factory
- :py:mod:`croncat_deploy.validator` runs the end to end lifecycle scenario
- :py:mod:`croncat_deploy.orchestrator` runs all of the above on several networks in parallel

Command line entry points are in ``scripts/croncat``.
"""
