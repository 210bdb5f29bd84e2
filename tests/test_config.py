# tests/test_config.py
from datetime import timedelta
from pathlib import Path

import pytest

from sitewatch import DEFAULT_USERAGENT
from sitewatch.config import load_config, parse_config
from sitewatch.errors import ConfigError


def test_defaults() -> None:
    config = parse_config({"watches": [{"name": "a", "url": "https://a.example/"}]})

    assert config.retry.count == 3
    assert config.retry.delay == timedelta(seconds=3)
    assert config.timeout == timedelta(seconds=30)
    assert config.graceful_timeout == timedelta(seconds=5)
    assert config.database == "db.sqlite3"
    assert config.useragent == DEFAULT_USERAGENT
    assert config.timezone == "UTC"
    assert config.mail is None

    watch = config.watches[0]
    assert watch.cron == "@hourly"
    assert watch.method == "GET"
    assert watch.disabled is False


def test_empty_document_is_an_empty_config() -> None:
    assert parse_config(None).watches == []


def test_durations_accept_go_strings_and_numbers() -> None:
    config = parse_config({"timeout": "1m30s", "retry": {"delay": 2}, "graceful_timeout": "500ms"})
    assert config.timeout == timedelta(seconds=90)
    assert config.retry.delay == timedelta(seconds=2)
    assert config.graceful_timeout == timedelta(milliseconds=500)


def test_invalid_duration() -> None:
    with pytest.raises(ConfigError):
        parse_config({"timeout": "soon"})


def test_jq_and_extract_body_are_exclusive() -> None:
    watch = {"name": "a", "url": "https://a.example/", "jq": ".a", "extract_body": True}
    with pytest.raises(ConfigError, match="jq filter and extract body cannot be used at the same time"):
        parse_config({"watches": [watch]})


def test_invalid_jq_filter() -> None:
    with pytest.raises(ConfigError, match="jq"):
        parse_config({"watches": [{"name": "a", "url": "https://a.example/", "jq": ".a | | ."}]})


def test_name_and_url_must_be_unique() -> None:
    watches = [
        {"name": "a", "url": "https://a.example/"},
        {"name": "a", "url": "https://a.example/"},
    ]
    with pytest.raises(ConfigError, match="unique"):
        parse_config({"watches": watches})


def test_same_name_different_url_is_fine() -> None:
    watches = [
        {"name": "a", "url": "https://a.example/"},
        {"name": "a", "url": "https://b.example/"},
    ]
    assert len(parse_config({"watches": watches}).watches) == 2


@pytest.mark.parametrize(
    "watch",
    [
        {"name": "a", "url": "ftp://a.example/"},
        {"name": "a", "url": "https://"},
        {"name": "a", "url": "http://exa mple.com/"},
        {"name": "a", "url": "a.example/page"},
        {"name": "a", "url": "https://a.example/", "method": "get"},
        {"name": "a", "url": "https://a.example/", "cron": "61 * * * *"},
        {"name": "a", "url": "https://a.example/", "cron": "* * *"},
        {"name": "a", "url": "https://a.example/", "cron": "CRON_TZ=Nowhere/City 0 * * * *"},
        {"name": "a", "url": "https://a.example/", "pattern": "("},
        {"name": "a", "url": "https://a.example/", "retry_on_match": ["[a-"]},
        {"name": "a", "url": "https://a.example/", "additional_to": ["not-an-address"]},
        {"name": "a", "url": "https://a.example/", "no_errormail_on_statuscode": [42]},
        {"name": "a", "url": "https://a.example/", "webhooks": [{"url": "https://hook.example/", "method": "HEAD"}]},
        {"name": "a", "url": "https://a.example/", "webhooks": [{"url": "https://:8080/hook"}]},
        {"name": "a", "url": "https://a.example/", "unknown_key": 1},
    ],
)
def test_invalid_watch_definitions(watch) -> None:
    with pytest.raises(ConfigError):
        parse_config({"watches": [watch]})


def test_proxy_credentials_go_together() -> None:
    with pytest.raises(ConfigError, match="together"):
        parse_config({"proxy": {"url": "http://proxy:3128", "username": "bob"}})


def test_invalid_location() -> None:
    with pytest.raises(ConfigError):
        parse_config({"location": "Mars/Olympus"})


def test_mail_config() -> None:
    config = parse_config(
        {
            "mail": {
                "server": "smtp.example.com",
                "port": 465,
                "from": {"name": "Watcher", "mail": "watcher@example.com"},
                "to": ["ops@example.com"],
                "tls": True,
            }
        }
    )
    assert config.mail.sender.mail == "watcher@example.com"
    assert config.mail.retries == 3
    assert config.mail.retry_delay == timedelta(seconds=3)
    assert config.mail.timeout == timedelta(seconds=10)


def test_mail_needs_recipients() -> None:
    with pytest.raises(ConfigError):
        parse_config(
            {
                "mail": {
                    "server": "smtp.example.com",
                    "port": 25,
                    "from": {"name": "Watcher", "mail": "watcher@example.com"},
                    "to": [],
                }
            }
        )


def test_enabled_watches_skips_disabled() -> None:
    config = parse_config(
        {
            "watches": [
                {"name": "a", "url": "https://a.example/"},
                {"name": "b", "url": "https://b.example/", "disabled": True},
            ]
        }
    )
    assert [w.name for w in config.enabled_watches] == ["a"]


def test_watch_is_immutable() -> None:
    config = parse_config({"watches": [{"name": "a", "url": "https://a.example/"}]})
    with pytest.raises(Exception):
        config.watches[0].url = "https://b.example/"


def test_load_config_from_yaml(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        """
location: Europe/Stockholm
retry:
  count: 1
  delay: 5s
watches:
  - name: news
    url: https://news.example/
    cron: CRON_TZ=UTC 0 9 * * 1-5
    extract_body: true
    replaces:
      - pattern: "\\\\d+ visitors"
""",
        encoding="utf-8",
    )

    config = load_config(str(path))

    assert config.timezone == "Europe/Stockholm"
    assert config.retry.count == 1
    watch = config.watches[0]
    assert watch.extract_body is True
    assert watch.replaces[0].pattern == r"\d+ visitors"
    assert watch.replaces[0].replace_with == ""


def test_load_config_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="could not load"):
        load_config(str(tmp_path / "nope.yaml"))


def test_load_config_requires_mapping(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(str(path))


def test_example_config_is_valid() -> None:
    config = load_config(str(Path(__file__).resolve().parent.parent / "config.example.yaml"))

    assert [w.name for w in config.enabled_watches] == ["Release notes", "Status API", "Pricing"]
    assert config.mail.starttls is True
    assert config.watches[1].webhooks[0].header["Authorization"] == "Bearer change-me"
