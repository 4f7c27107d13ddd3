"""配置、日志与命令行测试"""

import logging
import socket

import pytest

from socket_async import cli
from socket_async.config import ClientConfig, load_client_config, load_config
from socket_async.errors import InvalidProxyOptions
from socket_async.logger import ContextFilter, LogConfig, LogFormatter, LoggerManager

CONFIG_YAML = """
target:
  host: example.com
  port: 443
  timeout: 5
idle_timeout: 30
proxy:
  type: HTTP
  host: 127.0.0.1
  port: 3128
  username: user
  password: pass
logging:
  level: DEBUG
  enable_console: false
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / 'client.yaml'
    path.write_text(CONFIG_YAML, encoding='utf-8')
    return str(path)


def test_load_client_config(config_file):
    config = load_client_config(config_file)

    assert config.host == 'example.com'
    assert config.port == 443
    assert config.idle_timeout == 30
    assert config.connect_options().timeout == 5
    assert config.proxy.type == 'http'
    assert config.proxy.timeout == 10.0
    assert config.proxy.username == 'user'


def test_missing_file_is_empty(tmp_path):
    assert load_config(str(tmp_path / 'missing.yaml')) == {}
    assert load_client_config(str(tmp_path / 'missing.yaml')) is None


def test_malformed_yaml_is_empty(tmp_path):
    path = tmp_path / 'broken.yaml'
    path.write_text('target: [unclosed', encoding='utf-8')
    assert load_config(str(path)) == {}


def test_invalid_proxy_block_is_rejected():
    with pytest.raises(InvalidProxyOptions):
        ClientConfig.from_dict({'target': {'host': 'h', 'port': 1}, 'proxy': {'type': 'socks4', 'host': 'p', 'port': 1}})


def test_log_config_from_file_and_env(config_file, monkeypatch):
    monkeypatch.setenv('LOG_BACKUP_COUNT', '2')
    config = LoggerManager().load_config_from_file(config_file)

    assert config.level == 'DEBUG'
    assert config.enable_console is False
    assert config.enable_file is False
    assert config.backup_count == 2


def test_context_filter_and_formatter():
    context = ContextFilter(['target', 'proxy'])
    context.add_context(target='example.com:443')
    record = logging.LogRecord('socket-async-test', logging.INFO, __file__, 1, 'hello', None, None)

    assert context.filter(record)
    assert record.context == 'target=example.com:443 | proxy=-'

    formatter = LogFormatter(fmt='%(levelname)s [%(context)s] %(message)s', use_color=True)
    line = formatter.format(record)
    assert 'hello' in line and '\033[32m' in line
    assert record.levelname == 'INFO'


def test_file_logging(tmp_path):
    manager = LoggerManager()
    manager.initialize(LogConfig(level='INFO', log_dir=str(tmp_path), enable_console=False, enable_file=True))
    manager.add_context(target='h:1')
    try:
        logging.getLogger('socket-async-test').info('written to file')
        for handler in logging.getLogger().handlers:
            handler.flush()
        content = (tmp_path / 'socket-async.log').read_text(encoding='utf-8')
        assert 'written to file' in content
        assert 'target=h:1' in content
    finally:
        for handler in logging.getLogger().handlers:
            handler.close()
        logging.getLogger().handlers.clear()
        manager.clear_context()


def test_cli_command_line_overrides_config(config_file):
    args = cli.build_parser().parse_args(
        ['other.host', '8443', '--config', config_file, '--proxy', 'socks5://127.0.0.1:1080']
    )
    config = cli.resolve_config(args)

    assert (config.host, config.port) == ('other.host', 8443)
    assert config.idle_timeout == 30
    assert config.proxy.type == 'socks5'


def test_cli_requires_target():
    args = cli.build_parser().parse_args([])
    with pytest.raises(ValueError):
        cli.resolve_config(args)


def test_cli_reports_refused_connection(capsys):
    with socket.socket() as sock:
        sock.bind(('127.0.0.1', 0))
        port = sock.getsockname()[1]

    try:
        assert cli.main(['127.0.0.1', str(port), '--timeout', '2']) == 1
        assert 'ECONNREFUSED' in capsys.readouterr().err
        assert LoggerManager().context_filter.context_data == {}
    finally:
        logging.getLogger().handlers.clear()
