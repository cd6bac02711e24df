# This file is part of spinboot. See LICENSE file for license information.
"""First boot that configures Spinnaker through Halyard's `hal` CLI."""

import logging
import os

from spinboot import settings, subp, util
from spinboot.boot import status
from spinboot.credentials import (
    CredentialMaterializer,
    Materialized,
    create_service_account_key,
    fetch_cluster_credentials,
    restrict,
)
from spinboot.defaults import DefaultsFile
from spinboot.errors import KubernetesConfigError
from spinboot.helpers import Paths
from spinboot.metadata import BootContext, MetadataStore

LOG = logging.getLogger(__name__)


class HalyardBoot:
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
        self.out = out
        self.user = util.get_cfg_option_str(cfg, "service_user", "spinnaker")
        self.naplen = cfg.get("poll_interval", 1)
        self.hal_cfg = cfg.get("halyard") or {}
        self.materializer = CredentialMaterializer(
            store,
            DefaultsFile(self.paths.defaults_file),
            self.paths,
            user=self.user,
        )

    def hal(self, *args):
        subp.subp(["hal"] + [str(a) for a in args], capture=False)

    def run(self):
        status(self.ctx, "Waiting for halyard to start running...", self.out)
        self.wait_until_ready()
        self.configure_docker()
        self.configure_kubernetes()
        self.configure_google()
        self.configure_storage()
        status(self.ctx, "Installing Spinnaker", self.out)
        self.install()
        status(self.ctx, "Spinnaker is now configured", self.out)

    def wait_until_ready(self):
        util.poll_until(
            lambda: subp.succeeds(["hal", "--ready"]),
            naplen=self.naplen,
            log_pre="halyard: ",
        )

    def _prepare_dir(self, path):
        dirpath = os.path.dirname(path)
        util.ensure_dir(dirpath)
        util.chownbyname_recursive(dirpath, self.user, self.user)

    def configure_docker(self) -> bool:
        if not self.store.get("gcr_enabled").present:
            return False
        path = self.paths.gcr_account_key
        self._prepare_dir(path)

        gcr_account = self.store.get("gcr_account").stripped()
        if not gcr_account:
            LOG.warning(
                "gcr_enabled is set without a gcr_account, skipping docker"
                " registry configuration"
            )
            return False
        gcr_address = (
            self.store.get("gcr_address").stripped()
            or settings.DEFAULT_DOCKER_REGISTRY
        )
        service_account = self.store.service_account_email()
        if not service_account or not create_service_account_key(
            service_account, path
        ):
            LOG.warning("Skipping docker registry configuration")
            return False
        LOG.info("Extracted GCR credentials to %s", path)
        restrict(path, 0o400, self.user, self.user)

        self.hal("config", "provider", "docker-registry", "enable")
        self.hal(
            "config",
            "provider",
            "docker-registry",
            "account",
            "add",
            gcr_account,
            "--password-file",
            path,
            "--username",
            settings.DOCKER_JSON_USERNAME,
            "--address",
            gcr_address,
        )
        return True

    def configure_kubernetes(self) -> bool:
        if not self.store.get("kube_enabled").present:
            return False
        path = self.paths.kube_config
        self._prepare_dir(path)

        kube_account = self.store.get("kube_account").stripped()
        kube_cluster = self.store.get("kube_cluster").stripped()
        kube_zone = self.store.get("kube_zone").stripped() or self.ctx.zone
        if not kube_cluster:
            raise KubernetesConfigError()

        if not fetch_cluster_credentials(kube_cluster, kube_zone, path):
            LOG.warning("Skipping kubernetes provider configuration")
            return False
        LOG.info("Kubernetes credentials successfully extracted to %s", path)
        restrict(path, 0o400, self.user, self.user)

        args = [
            "config",
            "provider",
            "kubernetes",
            "account",
            "add",
            kube_account,
            "--kubeconfig-path",
            path,
        ]
        gcr_account = self.store.get("gcr_account").stripped()
        if gcr_account:
            args += ["--docker-registries", gcr_account]
        self.hal("config", "provider", "kubernetes", "enable")
        self.hal(*args)
        return True

    def configure_google(self) -> bool:
        gce_account = self.store.get("gce_account").stripped()
        if not gce_account:
            LOG.warning("No gce_account given, skipping google provider")
            return False
        path = self.paths.gce_account_key
        self._prepare_dir(path)

        args = ["--project", self.ctx.project]
        if self.store.has("gce_creds"):
            result = self.materializer.extract_to_file(
                "gce_creds", path, 0o400
            )
            if result is Materialized.WRITTEN:
                LOG.info("Successfully wrote gce credential to %s", path)
                args += ["--json-path", path]

        self.hal(
            "config", "provider", "google", "account", "add", gce_account, *args
        )
        self.hal("config", "provider", "google", "enable")
        return True

    def configure_storage(self):
        storage_type = self.hal_cfg.get("storage_type", "gcs")
        self.hal(
            "config",
            "storage",
            storage_type,
            "edit",
            "--project",
            self.ctx.project,
            "--bucket",
            self.ctx.storage_bucket,
        )
        self.hal("config", "storage", "edit", "--type", storage_type)

    def install(self):
        self.hal(
            "config",
            "deploy",
            "edit",
            "--type",
            self.hal_cfg.get("deploy_type", "LocalDebian"),
        )
        self.hal("deploy", "apply")
