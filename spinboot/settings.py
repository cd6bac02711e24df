# This file is part of spinboot. See LICENSE file for license information.

# Set and read for determining the config file location
CFG_ENV_NAME = "SPINBOOT_CFG"

# This is expected to be a yaml formatted file
SPINBOOT_CONFIG = "/etc/spinboot/spinboot.cfg"

METADATA_URL = "http://metadata.google.internal/computeMetadata/v1/"
METADATA_HEADERS = {"Metadata-Flavor": "Google"}

# Value the deployment templating layer uses when it cannot express "empty".
SENTINEL_VALUE = "None"

DEFAULT_DOCKER_REGISTRY = "https://gcr.io"
DOCKER_JSON_USERNAME = "_json_key"

# What u get if no config is provided
CFG_BUILTIN = {
    "metadata_url": METADATA_URL,
    "service_user": "spinnaker",
    "defaults_file": "/etc/default/spinnaker",
    "install_dir": "/opt/spinnaker",
    "home_dir": "/home/spinnaker",
    "monitoring_dir": "/opt/spinnaker-monitoring",
    # Trades the utmost in security for less startup latency: the instance
    # is serving before pending OS updates are applied.
    "restart_before_upgrade": True,
    "replace_startup_script": True,
    "subsystems": [
        "spinnaker-clouddriver",
        "spinnaker-deck",
        "spinnaker-echo",
        "spinnaker-fiat",
        "spinnaker-front50",
        "spinnaker-gate",
        "spinnaker-igor",
        "spinnaker-orca",
        "spinnaker-rosco",
        "spinnaker",
    ],
    "dependencies": ["redis-server"],
    "poll_interval": 1,
    "log_cfgs": [],
    "halyard": {
        "deploy_type": "LocalDebian",
        "storage_type": "gcs",
    },
}
