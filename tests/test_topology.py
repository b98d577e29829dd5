import shlex

import pytest

from epg_deploy.output.pm2 import to_pm2_ecosystem
from epg_deploy.topology import build_topology, select_mode


def test_select_mode():
    assert select_mode([]) == "fallback"
    assert select_mode(["a"]) == "single"
    assert select_mode(["a", "b"]) == "multi"


@pytest.mark.parametrize("all_sites", ["0", "1"])
def test_multi_site_wins_over_all_sites(make_settings, all_sites):
    topo = build_topology(make_settings(SITE='["a.com","b.com"]', ALL_SITES=all_sites))
    assert topo.mode == "multi"
    assert topo.names() == ["serve", "grab:combined", "grab-at-startup:combined"]


@pytest.mark.parametrize("all_sites", ["0", "1"])
def test_single_site_ignores_all_sites(make_settings, all_sites):
    topo = build_topology(make_settings(SITE="Example.com", ALL_SITES=all_sites))
    assert topo.mode == "single"
    assert topo.names() == ["serve", "grab:example.com", "grab-at-startup:example.com"]
    startup = topo.processes[2]
    assert "--site" in startup.command
    assert "all_channels.xml" not in startup.command


def test_fallback_consults_all_sites(make_settings):
    curated = build_topology(make_settings())
    everything = build_topology(make_settings(ALL_SITES="yes"))

    assert curated.mode == everything.mode == "fallback"
    assert curated.names() == ["serve", "grab", "grab-at-startup"]
    assert "channels.xml" in curated.processes[2].command
    assert "all_channels.xml" in everything.processes[2].command


def test_no_startup_descriptor_when_disabled(make_settings):
    topo = build_topology(make_settings(RUN_AT_STARTUP="off"))
    assert topo.names() == ["serve", "grab"]


def test_serve_always_present_on_port(make_settings):
    for env in ({}, {"SITE": "a"}, {"SITE": "a b"}):
        topo = build_topology(make_settings(PORT="8081", **env))
        serve = topo.processes[0]
        assert serve.name == "serve"
        assert serve.restart == "always"
        assert serve.command == [
            "/nodejs/bin/node",
            "node_modules/serve/bin/serve.js",
            "-l",
            "tcp://0.0.0.0:8081",
            "public",
        ]


def test_scheduled_descriptor_wraps_job(make_settings):
    topo = build_topology(make_settings(CRON_SCHEDULE="0 2 * * *", SITE="epg.io"))
    grab = topo.processes[1]

    assert grab.schedule == "0 2 * * *"
    assert grab.restart == "always"
    assert grab.backoff_ms == 5000
    assert grab.command[:3] == ["/nodejs/bin/node", "node_modules/chronos-cli/bin/chronos.js", "--execute"]
    assert shlex.split(grab.command[3]) == grab.job
    assert grab.command[4:] == ["--pattern", "0 2 * * *", "--log"]


def test_startup_descriptor_runs_once(make_settings):
    startup = build_topology(make_settings(SITE="epg.io")).processes[2]
    assert startup.restart == "once"
    assert startup.stop_exit_codes == [0]
    assert startup.command == startup.job
    assert startup.schedule is None


def test_multi_site_job_calls_combine_entry_point(make_settings, tmp_path):
    settings = make_settings(SITE="b.com,a.com", EPG_PYTHON="/usr/bin/python3", EPG_SITES_DIR="/data/sites")
    topo = build_topology(settings)
    scheduled, startup = topo.processes[1], topo.processes[2]

    assert scheduled.job == startup.job
    job = startup.job
    assert job[:4] == ["/usr/bin/python3", "-m", "epg_deploy", "combine-and-grab"]
    sep = job.index("--")
    assert job[4:sep] == [
        "--site", "b.com",
        "--site", "a.com",
        "--sites-dir", "/data/sites",
        "--combined-dir", str(tmp_path / "scratch"),
    ]
    grab = job[sep + 1:]
    assert grab[:3] == ["/nodejs/bin/node", "node_modules/tsx/dist/cli.js", "scripts/commands/epg/grab.ts"]
    assert grab[3:5] == ["--channels", str(tmp_path / "scratch" / "channels.xml")]


def test_descriptors_are_frozen(make_settings):
    topo = build_topology(make_settings())
    with pytest.raises(Exception):
        topo.processes[0].name = "other"


def test_pm2_ecosystem(make_settings):
    eco = to_pm2_ecosystem(build_topology(make_settings()))
    serve, grab, startup = eco["apps"]

    assert serve["script"] == "/nodejs/bin/node"
    assert serve["interpreter"] == "none"
    assert serve["autorestart"] is True
    assert "exp_backoff_restart_delay" not in serve
    assert grab["exp_backoff_restart_delay"] == 5000
    assert grab["args"][0] == "node_modules/chronos-cli/bin/chronos.js"
    assert startup["autorestart"] is False
    assert startup["stop_exit_codes"] == [0]
    assert all(app["cwd"] == "/epg" and app["watch"] is False for app in eco["apps"])
