import pytest

from aqara.api import AqaraAPI
from aqara.config import ClientBuilder, normalize_base_url
from aqara.constants import Region, resolve
from aqara.errors import ConfigError

from conftest import APP_ID, APP_KEY, KEY_ID


def test_every_region_resolves_to_https_url():
    for region in Region:
        url = resolve(region)
        assert url.startswith("https://open-")
        assert url.endswith(".aqara.com/v3.0/open/api")
    assert len({r.base_url for r in Region}) == len(Region)


@pytest.mark.parametrize("name, region", [
    ("china", Region.CHINA),
    ("CN", Region.CHINA),
    ("usa", Region.USA),
    ("us", Region.USA),
    ("europe", Region.EUROPE),
    ("ger", Region.EUROPE),
    ("Korea", Region.KOREA),
    ("ru", Region.RUSSIA),
    (" singapore ", Region.SINGAPORE),
    ("SG", Region.SINGAPORE),
])
def test_region_parse(name, region):
    assert Region.parse(name) is region


def test_region_parse_unknown():
    with pytest.raises(ConfigError):
        Region.parse("mars")


def test_build_requires_credentials():
    with pytest.raises(ConfigError):
        ClientBuilder().region(Region.USA).build()


def test_build_requires_region_or_base_url():
    with pytest.raises(ConfigError):
        ClientBuilder().credentials(APP_ID, KEY_ID, APP_KEY).build()


def test_empty_app_key_is_rejected():
    with pytest.raises(ConfigError):
        ClientBuilder().credentials(APP_ID, KEY_ID, "")


def test_region_selects_base_url():
    config = ClientBuilder().credentials(APP_ID, KEY_ID, APP_KEY).region("sg").to_config()
    assert config.base_url == "https://open-sg.aqara.com/v3.0/open/api"
    assert config.region is Region.SINGAPORE


def test_base_url_overrides_region():
    config = (
        ClientBuilder()
        .credentials(APP_ID, KEY_ID, APP_KEY)
        .region(Region.CHINA)
        .base_url("https://staging.example.com/v3.0/open/api/")
        .to_config()
    )
    assert config.base_url == "https://staging.example.com/v3.0/open/api"


@pytest.mark.parametrize("url", ["", "ftp://host/api", "https://", "https://host", "https://host/"])
def test_normalize_base_url_rejects(url):
    with pytest.raises(ConfigError):
        normalize_base_url(url)


def test_normalize_base_url_strips_query():
    assert normalize_base_url(" https://h/api/?x=1#f ") == "https://h/api"


def test_defaults():
    config = ClientBuilder().credentials(APP_ID, KEY_ID, APP_KEY).region(Region.USA).to_config()
    assert config.lang == "en"
    assert config.connect_timeout == 10.0
    assert config.read_timeout == 30.0
    assert config.refresh_margin == 60.0
    assert config.token_expired_codes == frozenset({106, 108})
    assert config.connect_retries == 0
    assert config.verify is True
    assert config.proxy is None
    assert config.user_agent.startswith("aqara-open-python/")


@pytest.mark.parametrize("configure", [
    lambda b: b.timeouts(connect=0),
    lambda b: b.timeouts(read=-1),
    lambda b: b.refresh_margin(-5),
    lambda b: b.connect_retries(-1),
    lambda b: b.lang(""),
    lambda b: b.access_token("   "),
    lambda b: b.proxy("ftp://proxy:21"),
    lambda b: b.proxy("proxy:abc"),
])
def test_invalid_values(configure):
    b = ClientBuilder().credentials(APP_ID, KEY_ID, APP_KEY).region(Region.USA)
    configure(b)
    with pytest.raises(ConfigError):
        b.to_config()


def test_proxy_without_port_needs_no_probe():
    config = ClientBuilder().credentials(APP_ID, KEY_ID, APP_KEY).region(Region.USA).proxy("proxyhost").to_config()
    assert config.proxy == "http://proxyhost"


def test_from_env():
    env = {
        "AQARA_APP_ID": APP_ID,
        "AQARA_KEY_ID": KEY_ID,
        "AQARA_APP_KEY": APP_KEY,
        "AQARA_REGION": "europe",
        "AQARA_REFRESH_TOKEN": "rt-env",
        "AQARA_LANG": "zh",
        "AQARA_PROXY": "http://proxy:3128",
        "AQARA_DEBUG_WIRE": "1",
    }
    config = ClientBuilder.from_env(env).to_config()
    assert config.credentials.app_id == APP_ID
    assert config.credentials.app_key == APP_KEY
    assert config.region is Region.EUROPE
    assert config.base_url == Region.EUROPE.base_url
    assert config.refresh_token == "rt-env"
    assert config.access_token is None
    assert config.lang == "zh"
    assert config.proxy == "http://proxy:3128"
    assert config.debug_wire is True


def test_from_env_base_url_and_static_token():
    env = {
        "AQARA_APP_ID": APP_ID,
        "AQARA_KEY_ID": KEY_ID,
        "AQARA_APP_KEY": APP_KEY,
        "AQARA_BASE_URL": "https://h/api",
        "AQARA_ACCESS_TOKEN": "tok-env",
        "AQARA_DEBUG_WIRE": "no",
    }
    config = ClientBuilder.from_env(env).to_config()
    assert config.base_url == "https://h/api"
    assert config.access_token == "tok-env"
    assert config.debug_wire is False


def test_from_env_partial_credentials():
    with pytest.raises(ConfigError):
        ClientBuilder.from_env({"AQARA_APP_ID": APP_ID})


def test_from_env_missing_region_fails_at_build():
    b = ClientBuilder.from_env({"AQARA_APP_ID": APP_ID, "AQARA_KEY_ID": KEY_ID, "AQARA_APP_KEY": APP_KEY})
    with pytest.raises(ConfigError):
        b.build()


def test_build_returns_client(builder):
    with builder.access_token("t").lang("ru").build() as client:
        assert isinstance(client, AqaraAPI)
        assert client.tokens.is_static
        assert client.config.lang == "ru"
        assert client.timeout == (10.0, 30.0)


def test_config_repr_hides_secrets():
    config = (
        ClientBuilder()
        .credentials(APP_ID, KEY_ID, APP_KEY)
        .region(Region.USA)
        .access_token("very-secret-token")
        .to_config()
    )
    text = repr(config)
    assert APP_KEY not in text
    assert "very-secret-token" not in text
