"""
SOCKS5 协商测试

FakeStream 扮演代理服务器，对客户端的每次写入回放预设的应答。
"""

import asyncio
import ipaddress
import struct

import pytest

from fake_stream import FakeStream
from socket_async.connection import ConnectOptions, ProxyOptions, SocketAsync
from socket_async.errors import (
    ECONNREFUSED, AuthFailed, BadAuthVersion, BadByteCount, BadVersion,
    ProxyError, SocketAsyncError, TargetConnectFailed,
    UnsupportedAddressType, UnsupportedAuthMethod,
)
from socket_async.socks5 import GREETING, TargetAddress, decode_address, encode_address

SUCCESS_REPLY = b'\x05\x00\x00\x01\x00\x00\x00\x00\x00\x00'
PROXY = ProxyOptions('127.0.0.1', 1080, timeout=1.0)
AUTH_PROXY = ProxyOptions('127.0.0.1', 1080, username='user', password='pass', timeout=1.0)


def negotiate(stream: FakeStream, host: str = 'example.com', port: int = 443,
              proxy: ProxyOptions = PROXY) -> SocketAsync:
    async def scenario():
        sock = SocketAsync(stream)
        await sock.connect(ConnectOptions(host, port), proxy)
        return sock

    return asyncio.run(scenario())


def negotiate_error(stream: FakeStream, **kwargs) -> ProxyError:
    with pytest.raises(ProxyError) as info:
        negotiate(stream, **kwargs)
    return info.value


# ============================================================================
# 成功路径
# ============================================================================

def test_no_auth_negotiation_writes_only_defined_requests():
    stream = FakeStream(replies=[b'\x05\x00', SUCCESS_REPLY])
    sock = negotiate(stream)

    assert stream.connected_to == ('127.0.0.1', 1080)
    assert stream.writes == [
        GREETING,
        b'\x05\x01\x00\x03\x0bexample.com\x01\xbb',
    ]
    assert sock.bound_address == ('0.0.0.0', 0)
    assert sock.buffered == 0


def test_greeting_offers_no_auth_and_userpass():
    assert GREETING == bytes([0x05, 0x02, 0x00, 0x02])


def test_username_password_negotiation():
    stream = FakeStream(replies=[b'\x05\x02', b'\x01\x00', SUCCESS_REPLY])
    negotiate(stream, proxy=AUTH_PROXY)

    assert stream.writes[1] == b'\x01\x04user\x04pass'
    assert len(stream.writes) == 3


def test_fragmented_replies_are_reassembled():
    bound = b'\x05\x00\x00\x03\x09proxy.lan\x10\x92'
    stream = FakeStream(replies=[[b'\x05', b'\x00'], [bound[:4], bound[4:9], bound[9:]]])
    sock = negotiate(stream)

    assert sock.bound_address == ('proxy.lan', 4242)
    assert sock.buffered == 0


def test_tunnel_bytes_after_reply_stay_buffered():
    async def scenario():
        stream = FakeStream(replies=[b'\x05\x00', SUCCESS_REPLY + b'HELLO'])
        sock = SocketAsync(stream)
        await sock.connect(ConnectOptions('example.com', 443), PROXY)

        assert sock.buffered == 5
        assert await sock.read_and_clear() == b'HELLO'

    asyncio.run(scenario())


def test_ipv4_target_request():
    stream = FakeStream(replies=[b'\x05\x00', SUCCESS_REPLY])
    negotiate(stream, host='10.0.0.1', port=8080)

    assert stream.writes[1] == b'\x05\x01\x00\x01\x0a\x00\x00\x01\x1f\x90'


def test_ipv6_target_request():
    stream = FakeStream(replies=[b'\x05\x00', SUCCESS_REPLY])
    negotiate(stream, host='1050:0:0:0:5:600:300c:326b', port=443)

    expected_address = bytes.fromhex('1050' '0000' '0000' '0000' '0005' '0600' '300c' '326b')
    assert stream.writes[1] == b'\x05\x01\x00\x04' + expected_address + b'\x01\xbb'


# ============================================================================
# 失败路径
# ============================================================================

def test_ruleset_rejection_is_wrapped_in_proxy_error():
    stream = FakeStream(replies=[b'\x05\x00', b'\x05\x02\x00\x01\x00\x00\x00\x00\x00\x00'])
    error = negotiate_error(stream)

    assert 'ruleset' in str(error)
    assert isinstance(error.original, TargetConnectFailed)
    assert error.original.reply_code == 2
    assert stream.destroyed


@pytest.mark.parametrize('code,fragment', [
    (0x01, 'Proxy server failure'),
    (0x03, 'Network unreachable'),
    (0x04, 'Host unreachable'),
    (0x05, 'Connection refused'),
    (0x06, 'TTL expired'),
    (0x07, 'Command not supported'),
    (0x08, 'Address type not supported'),
    (0x09, 'Unknown error'),
])
def test_reply_codes_map_to_messages(code, fragment):
    stream = FakeStream(replies=[b'\x05\x00', bytes([0x05, code])])
    error = negotiate_error(stream)

    assert fragment in str(error)
    assert error.original.reply_code == code


def test_greeting_bad_version():
    error = negotiate_error(FakeStream(replies=[b'\x04\x00']))
    assert isinstance(error.original, BadVersion)


def test_greeting_bad_byte_count():
    error = negotiate_error(FakeStream(replies=[b'\x05\x00\x00']))
    assert isinstance(error.original, BadByteCount)


def test_short_greeting_then_silence_is_bad_byte_count():
    error = negotiate_error(
        FakeStream(replies=[b'\x05']),
        proxy=ProxyOptions('127.0.0.1', 1080, timeout=0.05),
    )
    assert isinstance(error.original, BadByteCount)


def test_short_greeting_then_fin_is_bad_byte_count():
    stream = FakeStream(replies=[b'\x05'])

    async def scenario():
        sock = SocketAsync(stream)
        task = asyncio.ensure_future(sock.connect(ConnectOptions('example.com', 443), PROXY))
        await asyncio.sleep(0.01)
        stream.end()
        with pytest.raises(ProxyError) as info:
            await task
        return info.value

    error = asyncio.run(scenario())
    assert isinstance(error.original, BadByteCount)
    assert stream.destroyed


def test_short_auth_reply_is_bad_byte_count():
    error = negotiate_error(
        FakeStream(replies=[b'\x05\x02', b'\x01']),
        proxy=ProxyOptions('127.0.0.1', 1080, username='user', password='pass', timeout=0.05),
    )
    assert isinstance(error.original, BadByteCount)


def test_greeting_unsupported_method():
    error = negotiate_error(FakeStream(replies=[b'\x05\xff']))
    assert isinstance(error.original, UnsupportedAuthMethod)


def test_auth_bad_version():
    error = negotiate_error(FakeStream(replies=[b'\x05\x02', b'\x05\x00']), proxy=AUTH_PROXY)
    assert isinstance(error.original, BadAuthVersion)


def test_auth_failure():
    error = negotiate_error(FakeStream(replies=[b'\x05\x02', b'\x01\x01']), proxy=AUTH_PROXY)
    assert isinstance(error.original, AuthFailed)


def test_reply_bad_version():
    error = negotiate_error(FakeStream(replies=[b'\x05\x00', b'\x04\x00']))
    assert isinstance(error.original, BadVersion)


def test_unsupported_target_address():
    error = negotiate_error(FakeStream(replies=[b'\x05\x00']), host='a' * 256)
    assert isinstance(error.original, UnsupportedAddressType)


def test_proxy_connect_failure_is_wrapped():
    refused = SocketAsyncError(f"connect {ECONNREFUSED} 127.0.0.1:1080", ECONNREFUSED)
    error = negotiate_error(FakeStream(connect_error=refused))

    assert error.code == ECONNREFUSED
    assert error.original is refused
    assert error.__cause__ is refused


def test_proxy_silence_times_out():
    error = negotiate_error(
        FakeStream(replies=[None]),
        proxy=ProxyOptions('127.0.0.1', 1080, timeout=0.05),
    )
    assert error.code == 'ESOCKETTIMEOUT'


# ============================================================================
# 地址编码
# ============================================================================

@pytest.mark.parametrize('host', ['192.168.1.20', '1050:0:0:0:5:600:300c:326b', '::1', 'example.com'])
def test_address_encoding_round_trip(host):
    encoded = encode_address(host, 8443)
    decoded_host, decoded_port, consumed = decode_address(encoded)

    assert consumed == len(encoded)
    assert decoded_port == 8443
    try:
        assert ipaddress.ip_address(decoded_host) == ipaddress.ip_address(host)
    except ValueError:
        assert decoded_host == host


def test_address_classification():
    assert TargetAddress.classify('127.0.0.1').atyp == 0x01
    assert TargetAddress.classify('[::1]').atyp == 0x04
    assert TargetAddress.classify('localhost').atyp == 0x03
    assert TargetAddress.classify('d' * 255).encode(1)[1] == 255


@pytest.mark.parametrize('host', ['', 'x' * 256, 'fe80::1%eth0'])
def test_unsupported_hosts(host):
    with pytest.raises(UnsupportedAddressType):
        TargetAddress.classify(host)


def test_decode_rejects_truncated_address():
    encoded = encode_address('example.com', 80)
    with pytest.raises(BadByteCount):
        decode_address(encoded[:-1])


def test_domain_port_is_big_endian():
    encoded = encode_address('a.b', 0x1234)
    assert encoded[-2:] == struct.pack('>H', 0x1234)
