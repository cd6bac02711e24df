# This file is part of spinboot. See LICENSE file for license information.

import os

from spinboot import settings


class Paths:
    """Every filesystem location first boot reads or writes."""

    def __init__(self, cfg: dict):
        self.cfgs = cfg
        self.install_dir: str = cfg.get(
            "install_dir", settings.CFG_BUILTIN["install_dir"]
        )
        self.home_dir: str = cfg.get(
            "home_dir", settings.CFG_BUILTIN["home_dir"]
        )
        self.monitoring_dir: str = cfg.get(
            "monitoring_dir", settings.CFG_BUILTIN["monitoring_dir"]
        )
        self.defaults_file: str = cfg.get(
            "defaults_file", settings.CFG_BUILTIN["defaults_file"]
        )

        self.local_config_dir = os.path.join(self.install_dir, "config")
        self.local_yaml = os.path.join(
            self.local_config_dir, "spinnaker-local.yml"
        )
        self.google_credentials = os.path.join(
            self.local_config_dir, "google-credentials.json"
        )
        self.scripts_dir = os.path.join(self.install_dir, "scripts")
        self.reconfigure_script = os.path.join(
            self.scripts_dir, "reconfigure_spinnaker.sh"
        )
        self.original_startup_script = os.path.join(
            self.scripts_dir, "original_startup_script.sh"
        )
        self.cassandra_marker = os.path.join(
            self.install_dir, "cassandra", "SPINNAKER_INSTALLED_CASSANDRA"
        )
        self.cassandra_yaml = "/etc/cassandra/cassandra.yaml"

        self.aws_credentials = os.path.join(
            self.home_dir, ".aws", "credentials"
        )
        self.kube_config = os.path.join(self.home_dir, ".kube", "config")
        self.gcr_config = os.path.join(self.home_dir, ".gcr", "gcr.json")
        # Keys created during a halyard driven boot.
        self.gcp_dir = os.path.join(self.home_dir, ".gcp")
        self.gce_account_key = os.path.join(self.gcp_dir, "gce-account.json")
        self.gcr_account_key = os.path.join(self.gcp_dir, "gcr-account.json")

    def monitoring_installer(self, which):
        return os.path.join(
            self.monitoring_dir, "third_party", which, "install.sh"
        )
