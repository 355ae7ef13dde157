import json
from typing import List, Optional

RECORD_SEPARATOR = "\n\n"
DATA_PREFIX = "data:"

class SSEDecoder:
    """增量解码SSE文本流

    每次喂入一段文本，返回其中已完整的记录(以空行分隔)；
    不完整的尾部留在缓冲区里等待下一段。
    """

    def __init__(self):
        self._buffer = ""

    def feed(self, text: str) -> List[str]:
        self._buffer += text.replace("\r\n", "\n")
        *records, self._buffer = self._buffer.split(RECORD_SEPARATOR)
        return [r for r in records if r.strip()]

    def flush(self) -> List[str]:
        """流结束时取出缓冲区中剩余的记录"""
        tail, self._buffer = self._buffer, ""
        return [tail] if tail.strip() else []

def parse_record(record: str) -> Optional[dict]:
    """解析一条记录的 data 字段

    没有 data 行的记录(注释、心跳)返回None；JSON不合法时抛出ValueError。
    """
    lines = [
        line[len(DATA_PREFIX):].removeprefix(" ")
        for line in record.split("\n")
        if line.startswith(DATA_PREFIX)
    ]
    if not lines:
        return None
    payload = json.loads("\n".join(lines))
    if not isinstance(payload, dict):
        raise ValueError(f"记录不是JSON对象: {payload!r}")
    return payload
