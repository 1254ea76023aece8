from __future__ import annotations


class IotopStreamError(Exception):
    pass


class ConfigError(IotopStreamError):
    pass


class IngestError(IotopStreamError):
    """
    Falha fatal de ingestão: sem novas amostras o servidor não tem
    mais o que transmitir, então o processo inteiro deve terminar.
    """


class SampleParseError(IngestError):
    def __init__(self, line: str):
        super().__init__(f"Match failed, line: {line!r}")
        self.line = line


class UpstreamError(IngestError):
    pass
