# This file is part of spinboot. See LICENSE file for license information.
"""Materialize credentials handed to the instance through metadata.

Each credential kind is pulled from an instance attribute, written to a
fixed path readable only by the service account, and the attribute is
removed from the instance once the file exists. Running any of these a
second time finds the attribute gone and leaves the existing file alone.

Failures are split in two. Missing, blank or sentinel values and failed
credential downloads are recoverable: the feature stays disabled and boot
goes on. Failing to clear an attribute raises MetadataClearError and ends
the boot.
"""

import enum
import logging
import os
from typing import Dict, Optional

from spinboot import settings, subp, util
from spinboot.defaults import DefaultsFile, patch_yaml_field
from spinboot.helpers import Paths
from spinboot.metadata import MetadataStore, MetadataValue, Presence

LOG = logging.getLogger(__name__)

KUBE_KEYS = ("kube_cluster", "kube_zone", "kube_config")


class Materialized(enum.Enum):
    WRITTEN = "written"
    ABSENT = "absent"


def restrict(path, mode, user, group=None):
    """Tighten mode first, then hand the file to user."""
    util.chmod(path, mode)
    util.chownbyname(path, user, group)


def fetch_cluster_credentials(cluster, zone, path) -> bool:
    """Have gcloud write a kubeconfig for cluster to path.

    Success means gcloud exited zero and left a non-empty file at path. On
    failure any partial file is removed.
    """
    LOG.info(
        "Downloading credentials for cluster %s in zone %s...", cluster, zone
    )
    try:
        with util.umask(0o077):
            subp.subp(
                [
                    "gcloud",
                    "config",
                    "set",
                    "container/use_client_certificate",
                    "true",
                ]
            )
            subp.subp(
                [
                    "gcloud",
                    "container",
                    "clusters",
                    "get-credentials",
                    cluster,
                    "--zone",
                    zone,
                ],
                update_env={"KUBECONFIG": path},
            )
    except subp.ProcessExecutionError:
        util.logexc(LOG, "Fetching credentials for cluster %s failed", cluster)
        util.del_file(path)
        return False
    if util.is_nonempty_file(path):
        return True
    LOG.warning("Failed to extract kubernetes credentials to %s", path)
    util.del_file(path)
    return False


def create_service_account_key(account, path) -> bool:
    """Create a new json key for account at path."""
    LOG.info("Extracting GCR credentials for email %s", account)
    try:
        with util.umask(0o077):
            subp.subp(
                [
                    "gcloud",
                    "iam",
                    "service-accounts",
                    "keys",
                    "create",
                    path,
                    "--iam-account=%s" % account,
                ]
            )
    except subp.ProcessExecutionError:
        util.logexc(LOG, "Creating a key for %s failed", account)
        util.del_file(path)
        return False
    if util.is_nonempty_file(path):
        return True
    LOG.warning("Failed to extract GCR credentials to %s", path)
    util.del_file(path)
    return False


class CredentialMaterializer:
    def __init__(
        self,
        store: MetadataStore,
        defaults: DefaultsFile,
        paths: Paths,
        user=settings.CFG_BUILTIN["service_user"],
    ):
        self.store = store
        self.defaults = defaults
        self.paths = paths
        self.user = user

    def extract_to_file(
        self, key, path, mode=0o400, *, strip_sentinel=False, group=None
    ) -> Materialized:
        """Copy the metadata attribute key into path and clear the key.

        An unset key is left alone. A blank key is cleared without writing
        anything, so an existing file is never replaced by empty content.
        """
        value = self.store.get(key)
        if strip_sentinel:
            value = value.without_sentinel()
        return self._materialize(key, value, path, mode, group)

    def _materialize(
        self, key, value: MetadataValue, path, mode, group
    ) -> Materialized:
        if value.presence is Presence.ABSENT:
            LOG.debug("No %s metadata to extract", key)
            return Materialized.ABSENT
        if value.presence is Presence.BLANK:
            # consumed, but there is nothing worth keeping
            LOG.info("Ignoring blank %s metadata", key)
            self.store.clear(key)
            return Materialized.ABSENT

        util.ensure_dir(os.path.dirname(path))
        util.write_file(path, value.value, mode=mode)
        restrict(path, mode, self.user, group)
        self.store.clear(key)
        if not util.is_nonempty_file(path):
            util.del_file(path)
            return Materialized.ABSENT
        return Materialized.WRITTEN

    def _prepare_dir(self, dirpath):
        util.ensure_dir(dirpath)
        util.chownbyname_recursive(dirpath, self.user, self.user)

    def extract_local_yaml(self) -> Materialized:
        return self.extract_to_file(
            "spinnaker_local", self.paths.local_yaml, 0o600, group=self.user
        )

    def extract_google_credentials(self) -> Materialized:
        path = self.paths.google_credentials
        consumed = self.store.has("managed_project_credentials")
        result = self.extract_to_file(
            "managed_project_credentials", path, 0o400, strip_sentinel=True
        )
        if result is Materialized.WRITTEN:
            LOG.info("Extracted google credentials to %s", path)
            self.defaults.set_default(
                "SPINNAKER_GOOGLE_PROJECT_CREDENTIALS_PATH", path
            )
            json_path = path
        elif consumed and not util.is_nonempty_file(path):
            json_path = ""
        else:
            # nothing new was handed over, jsonPath stays as it is
            json_path = None

        consul_enabled = self.store.get("consul_enabled")
        if consul_enabled.present:
            LOG.info(
                "Setting google consul enabled to %s",
                consul_enabled.stripped(),
            )
            self.defaults.set_default(
                "SPINNAKER_GOOGLE_CONSUL_ENABLED", consul_enabled.stripped()
            )

        if json_path is not None:
            # The path only exists on this instance, so whatever the user put
            # in their local config is replaced.
            patch_yaml_field(self.paths.local_yaml, "jsonPath", json_path)
        return result

    def extract_aws_credentials(self) -> Materialized:
        path = self.paths.aws_credentials
        self._prepare_dir(os.path.dirname(path))
        # spinnaker rewrites this file when it refreshes credentials
        result = self.extract_to_file(
            "aws_credentials",
            path,
            0o600,
            strip_sentinel=True,
            group=self.user,
        )
        if result is Materialized.WRITTEN:
            LOG.info("Extracted aws credentials to %s", path)
            self.defaults.set_default("SPINNAKER_AWS_ENABLED", "true")
        return result

    def extract_kube_credentials(self) -> Materialized:
        path = self.paths.kube_config
        self._prepare_dir(os.path.dirname(path))

        kube_cluster = self.store.get("kube_cluster")
        kube_zone = self.store.get("kube_zone")
        kube_config = self.store.get("kube_config")

        if kube_cluster.present and kube_config.present:
            LOG.warning(
                'Both "kube_cluster" and "kube_config" were supplied as'
                ' instance metadata, relying on "kube_config"'
            )

        result = Materialized.ABSENT
        if not kube_config.absent:
            LOG.info("Attempting to write kube_config to %s...", path)
            result = self._materialize(
                "kube_config",
                kube_config.without_sentinel(),
                path,
                0o400,
                None,
            )
            if result is Materialized.WRITTEN:
                LOG.info("Successfully wrote kube_config to %s", path)

        if result is Materialized.ABSENT and kube_cluster.present:
            zone = kube_zone.stripped() or self.store.ctx.zone
            if fetch_cluster_credentials(kube_cluster.stripped(), zone, path):
                LOG.info(
                    "Kubernetes credentials successfully extracted to %s",
                    path,
                )
                restrict(path, 0o400, self.user, self.user)
                result = Materialized.WRITTEN

        if result is Materialized.WRITTEN:
            self.defaults.set_default("SPINNAKER_KUBERNETES_ENABLED", "true")
            # a kube_config that was read has been cleared already
            for key in KUBE_KEYS:
                if key == "kube_config" and not kube_config.absent:
                    continue
                self.store.clear(key)
        elif kube_config.absent and not kube_cluster.present:
            LOG.info("No kubernetes credentials or cluster provided.")
        return result

    def extract_gcr_credentials(self) -> Materialized:
        path = self.paths.gcr_config
        self._prepare_dir(os.path.dirname(path))

        gcr_enabled = self.store.get("gcr_enabled")
        gcr_account = self.store.get("gcr_account")
        if not gcr_enabled.present and not gcr_account.present:
            LOG.info("GCR not enabled")
            self.store.clear("gcr_account")
            self.store.clear("gcr_enabled")
            return Materialized.ABSENT

        LOG.info("GCR enabled")
        if gcr_account.present:
            written = self._create_gcr_key(gcr_account.stripped(), path)
        else:
            # The instance's own service account is enabled for the compute
            # API, so it can create a key for itself.
            account = self.store.service_account_email()
            try:
                written = self._create_gcr_key(account, path)
            finally:
                self.store.clear("gcr_account")

        if not written:
            return Materialized.ABSENT

        LOG.info("Extracted GCR credentials to %s", path)
        restrict(path, 0o400, self.user, self.user)
        registry = (
            self.store.get("gcr_location").stripped()
            or settings.DEFAULT_DOCKER_REGISTRY
        )
        self.defaults.set_default("SPINNAKER_DOCKER_PASSWORD_FILE", path)
        self.defaults.set_default(
            "SPINNAKER_DOCKER_USERNAME", settings.DOCKER_JSON_USERNAME
        )
        self.defaults.set_default("SPINNAKER_DOCKER_REGISTRY", registry)
        return Materialized.WRITTEN

    def _create_gcr_key(self, account: Optional[str], path) -> bool:
        if not account:
            LOG.warning("No service account available for GCR credentials")
            return False
        return create_service_account_key(account, path)

    def extract_all(self) -> Dict[str, Materialized]:
        return {
            "google": self.extract_google_credentials(),
            "aws": self.extract_aws_credentials(),
            "kubernetes": self.extract_kube_credentials(),
            "gcr": self.extract_gcr_credentials(),
        }
