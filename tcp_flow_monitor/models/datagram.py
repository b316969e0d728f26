"""TCP datagram record."""

from dataclasses import dataclass
from typing import Optional


# TCP header flag bits
FIN = 0x01
SYN = 0x02
RST = 0x04
PSH = 0x08
ACK = 0x10
URG = 0x20
ECE = 0x40
CWR = 0x80


@dataclass
class TCPFlags:
    """TCP flag decomposition."""
    syn: bool = False
    ack: bool = False
    fin: bool = False
    rst: bool = False
    psh: bool = False
    urg: bool = False
    ece: bool = False
    cwr: bool = False

    @classmethod
    def from_int(cls, flags: int) -> "TCPFlags":
        """Create TCPFlags from integer flag value."""
        return cls(
            fin=bool(flags & FIN),
            syn=bool(flags & SYN),
            rst=bool(flags & RST),
            psh=bool(flags & PSH),
            ack=bool(flags & ACK),
            urg=bool(flags & URG),
            ece=bool(flags & ECE),
            cwr=bool(flags & CWR),
        )

    def to_string(self) -> str:
        """Return string representation of flags."""
        names = [
            ("SYN", self.syn),
            ("ACK", self.ack),
            ("FIN", self.fin),
            ("RST", self.rst),
            ("PSH", self.psh),
            ("URG", self.urg),
            ("ECE", self.ece),
            ("CWR", self.cwr),
        ]
        flags = [name for name, is_set in names if is_set]
        return ",".join(flags) if flags else "NONE"


@dataclass(frozen=True)
class Datagram:
    """
    Normalized view of one captured TCP/IPv4 segment.
    Created once per packet by the decoder and discarded after processing.
    """
    src_ip: str
    src_port: int
    dst_ip: str
    dst_port: int
    payload_bytes: int
    seq_num: int
    ack_num: int
    flags: int
    data_offset: int = 5
    timestamp: float = 0.0
    interface: Optional[str] = None

    def is_syn(self) -> bool:
        """True for a SYN-only segment (no ACK, no other flag)."""
        return self.flags == SYN

    def get_flags(self) -> TCPFlags:
        """Get parsed TCP flags."""
        return TCPFlags.from_int(self.flags)

    @property
    def header_length(self) -> int:
        """TCP header length in bytes."""
        return self.data_offset * 4

    @property
    def flow_string(self) -> str:
        """Directional addressing, e.g. ``10.0.0.5:51000->93.184.216.34:80``."""
        return f"{self.src_ip}:{self.src_port}->{self.dst_ip}:{self.dst_port}"

    def __str__(self) -> str:
        return f"{self.flow_string} [{self.get_flags().to_string()}] len={self.payload_bytes}"
