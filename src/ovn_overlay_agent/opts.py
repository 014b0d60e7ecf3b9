"""oslo.config options of the overlay agent.

The YAML agent configuration is applied on top of these options with
``set_override`` so the driver only ever reads one configuration object.
"""

from __future__ import annotations

from oslo_config import cfg

DEFAULT_VAR_DIR = "/var/lib/ovn-overlay"
DEFAULT_NB_CONNECTION = "unix:/var/run/ovn/ovnnb_db.sock"
DEFAULT_OVSDB_CONNECTION = "unix:/var/run/openvswitch/db.sock"
DEFAULT_OVSDB_TIMEOUT = 60

CONF = cfg.CONF

agent_opts = [
    cfg.StrOpt('var_dir',
               default=DEFAULT_VAR_DIR,
               help='Directory holding the server certificate and the '
                    'per-network runtime files (dnsmasq hosts and pid '
                    'files of uplink bridges).'),
    cfg.StrOpt('state_file',
               default=None,
               help='JSON file the network records are persisted to. '
                    'If not set, records are only kept in memory.'),
    cfg.BoolOpt('clustered',
                default=False,
                help='Whether this server is a member of a cluster.'),
]

ovn_opts = [
    cfg.StrOpt('northbound_connection',
               default=DEFAULT_NB_CONNECTION,
               help='Connection string of the OVN northbound database.'),
    cfg.StrOpt('ovsdb_connection',
               default=DEFAULT_OVSDB_CONNECTION,
               help='Connection string of the local Open vSwitch database.'),
    cfg.IntOpt('ovsdb_timeout',
               default=DEFAULT_OVSDB_TIMEOUT,
               help='Timeout in seconds for OVSDB transactions.'),
]


def register_opts(conf: cfg.ConfigOpts = CONF) -> None:
    """Register the agent options with ``conf``."""

    conf.register_opts(agent_opts)
    conf.register_opts(ovn_opts, group='ovn')


def list_opts():
    return [(None, agent_opts), ('ovn', ovn_opts)]
