import pytest
from src.client.sse import SSEDecoder, parse_record

def test_decoder_buffers_partial_records():
    """半条记录留在缓冲区，直到分隔符到达"""
    decoder = SSEDecoder()

    assert decoder.feed('data: {"type":"log","mess') == []
    assert decoder.feed('age":"a","level":"info"}\n') == []
    records = decoder.feed('\ndata: {"type":"status","status":"PASS"}\n\n')

    assert records == [
        'data: {"type":"log","message":"a","level":"info"}',
        'data: {"type":"status","status":"PASS"}',
    ]
    assert decoder.flush() == []

def test_decoder_normalizes_crlf():
    decoder = SSEDecoder()
    records = decoder.feed('data: {"a":1}\r\n\r\n')

    assert records == ['data: {"a":1}']

def test_decoder_flush_returns_tail():
    decoder = SSEDecoder()
    decoder.feed('data: {"type":"status","status":"FAIL"}')

    assert decoder.flush() == ['data: {"type":"status","status":"FAIL"}']
    assert decoder.flush() == []

def test_parse_record():
    assert parse_record('data: {"type":"log","message":"x","level":"info"}') == {
        "type": "log", "message": "x", "level": "info"
    }

def test_parse_record_ignores_comments():
    """心跳和注释行没有 data 字段"""
    assert parse_record(": keep-alive") is None
    assert parse_record("event: ping") is None

def test_parse_record_multiline_data():
    assert parse_record('data: {"a":\ndata: 1}') == {"a": 1}

def test_parse_record_malformed():
    with pytest.raises(ValueError):
        parse_record("data: {not json")
    with pytest.raises(ValueError):
        parse_record("data: [1, 2]")
