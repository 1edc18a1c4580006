# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from pathlib import Path

from logging import Logger
from .mariadb import mariadb_api

from . import config, utils
import kopf
import logging


# These have to be imported so that kopf sees the annotations in those files
from .mariadb import operator_mariadb
from .admission import webhook  # noqa: F401

READY_FILE = "/tmp/mariadb-operator-ready"


@kopf.on.startup()  # type: ignore
def on_startup(settings: kopf.OperatorSettings, logger: Logger, *args, **_):
    utils.log_banner(__file__, logger)
    config.log_config_banner(logger)

    # don't post logger.debug() calls as k8s events
    settings.posting.level = logging.INFO

    if config.webhook_host:
        settings.admission.server = kopf.WebhookServer(
            addr="0.0.0.0", port=config.webhook_port, host=config.webhook_host)
        settings.admission.managed = "validate.k8s.mariadb.com"

    clusters = mariadb_api.get_all_mariadbs()
    operator_mariadb.register_existing_mariadbs(clusters, logger)

    Path(READY_FILE).touch()


@kopf.on.cleanup()  # type: ignore
def on_shutdown(logger: Logger, *args, **kwargs):
    logger.info("MariaDB operator shutting down")
    Path(READY_FILE).unlink(missing_ok=True)
