"""VCL text generation for the instance under test.

Pure string templating: a version header, one stanza per declared backend,
then the caller's VCL body.
"""

from dataclasses import dataclass
from typing import Iterable
from urllib.parse import urlsplit

VCL41 = "vcl 4.1;\n\n"
VCL40 = "vcl 4.0;\n\n"

BACKEND_TEMPLATE = """backend {name} {{
	.host = "{host}";
	.port = "{port}";
	.host_header = "{host}";
}}
"""


@dataclass(frozen=True)
class BackendSpec:
    """A named upstream the generated VCL declares.

    tls is recorded from the URL scheme; open-source varnishd cannot dial
    TLS backends, so it does not change the rendered stanza.
    """

    name: str
    host: str
    port: str
    tls: bool = False

    @classmethod
    def from_url(cls, name: str, url: str) -> "BackendSpec":
        """Build a backend from a URL such as http://127.0.0.1:8080.

        Raises:
            ValueError: If the name is empty or the URL has no host
        """
        if not name:
            raise ValueError("Backend name cannot be empty")
        parts = urlsplit(url)
        if not parts.hostname:
            raise ValueError(f"Backend URL has no host: {url!r}")

        tls = parts.scheme == "https"
        port = parts.port
        if port is None:
            port = 443 if tls else 80

        return cls(name=name, host=parts.hostname, port=str(port), tls=tls)

    def render(self) -> str:
        return BACKEND_TEMPLATE.format(name=self.name, host=self.host, port=self.port)


def render_vcl(version_header: str, backends: Iterable[BackendSpec], body: str) -> str:
    """Concatenate the version header, backend stanzas and body."""
    return version_header + "".join(b.render() for b in backends) + body
