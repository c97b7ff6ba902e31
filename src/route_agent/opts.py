"""oslo.config options for running the route controller inside an agent.

Services that already manage their settings with oslo.config can register
these options and build the same :class:`~route_agent.config.AgentConfig`
the YAML loader produces.
"""

from pathlib import Path

from oslo_config import cfg

from route_reconciler.domain import DomainConfig

from .config import AgentConfig, ControllerConfig, WatcherConfig

GROUP = 'route'

route_opts = [
    cfg.IntOpt('workers',
               default=2,
               min=1,
               help='Number of Routes reconciled in parallel.'),
    cfg.FloatOpt('resync_period',
                 default=300.0,
                 min=1.0,
                 help='Seconds between full resyncs of every Route.'),
    cfg.DictOpt('domains',
                default={'example.com': ''},
                help='Domain suffixes keyed by suffix, each with an optional '
                     'label selector in the form key=value;key2=value2. '
                     'An empty selector matches every Route. '
                     'Example: example.com:,prod.example.com:app=prod'),
    cfg.StrOpt('state_file',
               default=None,
               help='YAML or JSON file holding Routes, Configurations and '
                    'Revisions to watch. If not set, no watcher is started.'),
    cfg.FloatOpt('state_poll_interval',
                 default=5.0,
                 min=0.1,
                 help='Seconds between polls of state_file.'),
    cfg.StrOpt('output_dir',
               default=None,
               help='Directory where the converged state is written as '
                    'state.yaml. If not set, nothing is written.'),
]


def register_route_opts(conf=cfg.CONF):
    """Register the route controller options under the ``[route]`` group."""
    conf.register_opts(route_opts, group=GROUP)


def parse_selector(value):
    """Parse ``key=value;key2=value2`` into a dict.

    Args:
        value: Selector string; empty or ``None`` selects everything.

    Returns:
        Dict of label key to required value.
    """
    selector = {}
    for item in (value or '').split(';'):
        item = item.strip()
        if not item:
            continue
        key, sep, val = item.partition('=')
        if not sep or not key.strip():
            raise ValueError(f"invalid selector term '{item}'")
        selector[key.strip()] = val.strip()
    return selector


def controller_config_from_opts(conf=cfg.CONF):
    """Build an AgentConfig from registered and parsed options."""
    group = conf[GROUP]
    domains = DomainConfig.from_mapping({
        suffix: {'selector': parse_selector(selector)}
        for suffix, selector in (group.domains or {}).items()
    })
    watchers = []
    if group.state_file:
        watchers.append(WatcherConfig(type='file',
                                      path=Path(group.state_file),
                                      interval=group.state_poll_interval))
    return AgentConfig(
        controller=ControllerConfig(
            workers=group.workers,
            resync_period=group.resync_period,
            output_dir=Path(group.output_dir) if group.output_dir else None,
        ),
        domains=domains,
        watchers=watchers,
    )
