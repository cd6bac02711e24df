# This file is part of spinboot. See LICENSE file for license information.
"""First boot of a Spinnaker image configured through instance metadata.

The sequence is linear:

    STOP_SERVICE -> SET_BASE_DEFAULTS -> EXTRACT_LOCAL_CONFIG
    -> EXTRACT_CREDENTIALS -> INVOKE_CONFIG_CLI -> EXPERIMENTAL
    -> REPLACE_STARTUP_SCRIPT -> (RESTART_SERVICE | deferred)
    -> WAIT_FOR_DEPENDENCIES -> OS_UPGRADE -> (RESTART_SERVICE if deferred)

Whether the restart happens before or after the OS upgrade is decided once,
when the orchestrator is built.
"""

import enum
import logging
import os
import sys

from spinboot import subp, templater, util
from spinboot.apt import AptUpgrader
from spinboot.credentials import CredentialMaterializer
from spinboot.defaults import DefaultsFile, replace_in_file
from spinboot.helpers import Paths
from spinboot.metadata import BootContext, MetadataStore

LOG = logging.getLogger(__name__)

SERVICE = "spinnaker"
MONITORING_SERVICE = "spinnaker-monitoring"
CASSANDRA_THRIFT_PORT = 9160


class Stage(enum.Enum):
    STOP_SERVICE = "stop service"
    SET_BASE_DEFAULTS = "set base defaults"
    EXTRACT_LOCAL_CONFIG = "extract local config"
    EXTRACT_CREDENTIALS = "extract credentials"
    INVOKE_CONFIG_CLI = "invoke config cli"
    EXPERIMENTAL = "experimental startup"
    REPLACE_STARTUP_SCRIPT = "replace startup script"
    RESTART_SERVICE = "restart service"
    WAIT_FOR_DEPENDENCIES = "wait for dependencies"
    OS_UPGRADE = "os upgrade"


def status(ctx: BootContext, message, out=None):
    out = out or sys.stdout
    out.write("%s  %s\n" % (ctx.status_prefix, message))
    out.flush()
    LOG.info(message)


class BootOrchestrator:
    def __init__(
        self,
        ctx: BootContext,
        cfg: dict,
        store: MetadataStore,
        paths: Paths = None,
        out=None,
    ):
        self.ctx = ctx
        self.cfg = cfg
        self.store = store
        self.paths = paths or Paths(cfg)
        self.out = out or sys.stdout
        self.user = util.get_cfg_option_str(cfg, "service_user", SERVICE)
        self.naplen = cfg.get("poll_interval", 1)
        self.restart_before_upgrade = util.get_cfg_option_bool(
            cfg, "restart_before_upgrade", True
        )
        self.defaults = DefaultsFile(self.paths.defaults_file)
        self.materializer = CredentialMaterializer(
            store, self.defaults, self.paths, user=self.user
        )
        self.upgrader = AptUpgrader(
            util.get_cfg_option_list(cfg, "subsystems", [])
            + util.get_cfg_option_list(cfg, "dependencies", []),
            naplen=self.naplen,
        )
        self.stages = []

    def _enter(self, stage: Stage):
        LOG.debug("Entering stage: %s", stage.value)
        self.stages.append(stage)

    def status(self, message):
        status(self.ctx, message, self.out)

    def say(self, message):
        self.out.write(message + "\n")
        LOG.info(message)

    def run(self):
        # The image starts spinnaker on boot; keep it down until it has
        # been reconfigured so it never serves the default configuration.
        self.say("Stopping spinnaker while we configure it.")
        self.stop_service()

        self.status("Configuring Default Values")
        self.set_base_defaults()

        self.status("Extracting Configuration Info")
        self._enter(Stage.EXTRACT_LOCAL_CONFIG)
        self.materializer.extract_local_yaml()

        self.status("Extracting Credentials")
        self._enter(Stage.EXTRACT_CREDENTIALS)
        self.materializer.extract_all()

        self.status("Configuring Spinnaker")
        self.invoke_config_cli()

        self.experimental_startup()

        self.status("Cleaning Up")
        self.replace_startup_script()

        if self.restart_before_upgrade:
            self.status("Restarting Spinnaker")
            self.start_service()
        else:
            self.say("Waiting for upgrade before restarting spinnaker.")

        self.wait_for_dependencies()
        self.upgrade_os()

        if not self.restart_before_upgrade:
            self.status("Restarting Spinnaker")
            self.start_service()

        self.status("Spinnaker is now configured")

    def stop_service(self):
        self._enter(Stage.STOP_SERVICE)
        # not running is fine
        subp.succeeds(["stop", SERVICE])

    def start_service(self):
        self._enter(Stage.RESTART_SERVICE)
        subp.subp(["start", SERVICE], capture=False)

    def set_base_defaults(self):
        self._enter(Stage.SET_BASE_DEFAULTS)
        ctx = self.ctx
        for name, value in (
            ("SPINNAKER_GOOGLE_ENABLED", "true"),
            ("SPINNAKER_GOOGLE_PROJECT_ID", ctx.project),
            ("SPINNAKER_GOOGLE_DEFAULT_ZONE", ctx.zone),
            ("SPINNAKER_GOOGLE_DEFAULT_REGION", ctx.region),
            ("SPINNAKER_DEFAULT_STORAGE_BUCKET", ctx.storage_bucket),
            ("SPINNAKER_GOOGLE_CONSUL_ENABLED", "false"),
            # stackdriver uses the local project, not the managed one
            ("SPINNAKER_STACKDRIVER_PROJECT_NAME", ctx.project),
            ("SPINNAKER_STACKDRIVER_CREDENTIALS_PATH", ""),
        ):
            self.defaults.set_default(name, value)

    def invoke_config_cli(self):
        self._enter(Stage.INVOKE_CONFIG_CLI)
        subp.subp([self.paths.reconfigure_script], capture=False)

    def experimental_startup(self):
        self._enter(Stage.EXPERIMENTAL)
        install_monitoring = self.store.get("install_monitoring")
        if not install_monitoring.present:
            return
        which, *flags = install_monitoring.value.split()
        subp.subp(
            [self.paths.monitoring_installer(which)] + flags, capture=False
        )
        registry = os.path.join(self.paths.monitoring_dir, "registry")
        if not os.path.isfile(registry):
            util.rename(registry + ".example", registry)
        subp.subp(["service", MONITORING_SERVICE, "restart"], capture=False)
        self.store.clear("install_monitoring")

    def replace_startup_script(self):
        """Archive the startup script and swap in a restart-only one."""
        self._enter(Stage.REPLACE_STARTUP_SCRIPT)
        original = self.store.get("startup-script")
        util.write_file(
            self.paths.original_startup_script, original.value, mode=0o600
        )
        if not util.get_cfg_option_bool(
            self.cfg, "replace_startup_script", True
        ):
            self.store.clear("startup-script")
            return
        script = templater.render_template(
            "restart_startup_script.sh.tmpl",
            {
                "archive_path": self.paths.original_startup_script,
                "dependencies": util.get_cfg_option_list(
                    self.cfg, "dependencies", []
                ),
                "service": SERVICE,
            },
        )
        self.store.set_many({"startup-script": script})

    def cassandra_installed(self):
        return os.path.isfile(self.paths.cassandra_marker)

    def wait_for_dependencies(self):
        # Cassandra's thrift startup races the dist-upgrade below, so let
        # it get past thrift initialization first.
        self._enter(Stage.WAIT_FOR_DEPENDENCIES)
        if not self.cassandra_installed():
            return
        if util.is_port_open("localhost", CASSANDRA_THRIFT_PORT):
            return
        self.say("Waiting for Cassandra to start...")
        util.poll_until(
            lambda: util.is_port_open("localhost", CASSANDRA_THRIFT_PORT),
            naplen=self.naplen,
            log_pre="cassandra: ",
        )
        self.say("Cassandra is ready.")

    def upgrade_os(self):
        self._enter(Stage.OS_UPGRADE)
        self.upgrader.dist_upgrade()
        if self.cassandra_installed():
            self.enable_cassandra_thrift()

    def enable_cassandra_thrift(self):
        replace_in_file(
            self.paths.cassandra_yaml, "start_rpc: false", "start_rpc: true"
        )

        def enabled():
            if subp.succeeds(["nodetool", "enablethrift"]):
                return True
            self.say("Retrying...")
            return False

        util.poll_until(enabled, naplen=self.naplen, log_pre="nodetool: ")
