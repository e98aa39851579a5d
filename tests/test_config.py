from swipematch.config import Settings


def test_defaults():
    config = Settings(_env_file=None)

    assert config.MAX_MESSAGE_LENGTH == 500
    assert config.DISCOVERY_BATCH_SIZE <= config.MAX_DISCOVERY_BATCH_SIZE


def test_debug_parsed_from_string():
    assert Settings(_env_file=None, DEBUG="true").DEBUG is True
    assert Settings(_env_file=None, DEBUG="0").DEBUG is False


def test_debug_follows_development_environment_when_blank():
    assert Settings(_env_file=None, ENVIRONMENT="development", DEBUG="").DEBUG is True
    assert Settings(_env_file=None, ENVIRONMENT="production", DEBUG="").DEBUG is False
