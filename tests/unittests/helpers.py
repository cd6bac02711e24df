# This file is part of spinboot. See LICENSE file for license information.
"""Fakes for the metadata service and the commands provisioning runs."""

from spinboot import subp, util
from spinboot.metadata import BootContext

INSTANCE = "spin-vm"
ZONE = "us-central1-f"
PROJECT = "my-project"
SERVICE_ACCOUNT = "123-compute@developer.gserviceaccount.com"

FAKE_KUBECONFIG = "apiVersion: v1\nkind: Config\n"
FAKE_ACCOUNT_KEY = '{"type": "service_account"}\n'


def make_context(**kwargs):
    values = {"instance": INSTANCE, "zone": ZONE, "project": PROJECT}
    values.update(kwargs)
    return BootContext(**values)


class FakeFetcher:
    """Stands in for GoogleMetadataFetcher.

    Instance attributes live in ``attributes``; every other metadata path
    is looked up in ``values``.
    """

    def __init__(self, attributes=None, values=None):
        self.attributes = dict(attributes or {})
        self.values = {
            "instance/zone": "projects/123/zones/%s" % ZONE,
            "instance/name": INSTANCE,
            "project/project-id": PROJECT,
            "project/numeric-project-id": "123",
            "instance/service-accounts/default/email": SERVICE_ACCOUNT,
        }
        self.values.update(values or {})

    def get_value(self, path):
        prefix = "instance/attributes/"
        if path.startswith(prefix):
            return self.attributes.get(path[len(prefix) :])
        return self.values.get(path)


class FakeCommands:
    """A side_effect for subp.subp that imitates gcloud.

    Clearing metadata removes the attribute from the fetcher, fetching
    cluster credentials writes a kubeconfig and creating a service account
    key writes a json key. Every call is recorded in ``calls``.
    """

    def __init__(self, fetcher: FakeFetcher):
        self.fetcher = fetcher
        self.calls = []
        self.failures = {}
        self.clear_failures = set()
        self.kubeconfig = FAKE_KUBECONFIG
        self.account_key = FAKE_ACCOUNT_KEY

    def fail(self, *prefix, exit_code=1):
        self.failures[prefix] = exit_code

    def fail_clear(self, key):
        self.clear_failures.add(key)

    @property
    def commands(self):
        return [args for args, _kwargs in self.calls]

    @property
    def cleared(self):
        return [
            args[args.index("--keys") + 1]
            for args in self.commands
            if args[:4] == ["gcloud", "compute", "instances", "remove-metadata"]
        ]

    @property
    def added(self):
        added = {}
        for args in self.commands:
            if args[:4] == ["gcloud", "compute", "instances", "add-metadata"]:
                arg = args[args.index("--metadata") + 1]
                added.update(_parse_metadata_arg(arg))
        return added

    def __call__(self, args, *other_args, **kwargs):
        args = list(args)
        self.calls.append((args, kwargs))
        for prefix, exit_code in self.failures.items():
            if tuple(args[: len(prefix)]) == prefix:
                raise subp.ProcessExecutionError(
                    cmd=args, exit_code=exit_code
                )
        if args[:3] == ["gcloud", "compute", "instances"]:
            self._instances(args)
        elif args[:4] == ["gcloud", "container", "clusters", "get-credentials"]:
            if self.kubeconfig:
                util.write_file(
                    kwargs["update_env"]["KUBECONFIG"], self.kubeconfig
                )
        elif args[:5] == ["gcloud", "iam", "service-accounts", "keys", "create"]:
            if self.account_key:
                util.write_file(args[5], self.account_key)
        return subp.SubpResult("", "")

    def _instances(self, args):
        if args[3] == "remove-metadata":
            key = args[args.index("--keys") + 1]
            if key in self.clear_failures:
                raise subp.ProcessExecutionError(cmd=args, exit_code=1)
            self.fetcher.attributes.pop(key, None)
        elif args[3] == "add-metadata":
            self.fetcher.attributes.update(
                _parse_metadata_arg(args[args.index("--metadata") + 1])
            )


def _parse_metadata_arg(arg):
    delim = ","
    if arg.startswith("^"):
        delim, _, arg = arg[1:].partition("^")
    pairs = {}
    for entry in arg.split(delim):
        key, _, value = entry.partition("=")
        pairs[key] = value
    return pairs
