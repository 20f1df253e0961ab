"""oslo.config options for embedding the route engine in a host agent.

Agents that already configure themselves through oslo.config register these
options next to their own and build :class:`ClientOptions`, the gRPC dataplane
stub and the cleanup sweep from the parsed configuration instead of using the
YAML loader.
"""

import ipaddress

from oslo_config import cfg

from metalnet_agent.cleanup import PeriodicCleanup
from metalnet_dpdk import rpc
from metalnet_routes.config import ClientOptions

metalnet_opts = [
    cfg.BoolOpt('metalnet_ipv4_only',
                default=False,
                help='Reject non-IPv4 route destinations before programming '
                     'the dataplane.'),
    cfg.StrOpt('metalnet_preferred_network',
               default=None,
               help='Subnet load balancer target next hops must belong to. '
                    'Targets outside of it are not installed. '
                    'Example: 10.0.0.0/8'),
    cfg.FloatOpt('metalnet_cleanup_interval',
                 default=60.0,
                 min=1.0,
                 help='Seconds between sweeps removing routes of networks '
                      'that are no longer peered.'),
    cfg.StrOpt('dpservice_address',
               default=rpc.DEFAULT_ADDRESS,
               help='host:port of the dataplane service gRPC endpoint.'),
]


def register_metalnet_opts(conf=None):
    """Register the metalnet options on ``conf`` (defaults to ``cfg.CONF``)."""
    conf = conf if conf is not None else cfg.CONF
    conf.register_opts(metalnet_opts)
    return conf


def parse_preferred_network(value):
    """Parse the preferred network option, ``None`` when unset."""
    if not value:
        return None
    return ipaddress.ip_network(value, strict=False)


def client_options_from_conf(conf=None):
    """Build :class:`ClientOptions` from registered oslo.config options."""
    conf = conf if conf is not None else cfg.CONF
    return ClientOptions(
        ipv4_only=conf.metalnet_ipv4_only,
        preferred_network=parse_preferred_network(conf.metalnet_preferred_network),
    )


def dataplane_from_conf(conf=None):
    """Open a gRPC dataplane stub on ``dpservice_address``."""
    conf = conf if conf is not None else cfg.CONF
    return rpc.GrpcDataplane(conf.dpservice_address)


def cleanup_from_conf(handler, cache, stop_event, conf=None):
    """Build the unpeered-route sweep running every ``metalnet_cleanup_interval``."""
    conf = conf if conf is not None else cfg.CONF
    return PeriodicCleanup(handler, cache, conf.metalnet_cleanup_interval, stop_event)
