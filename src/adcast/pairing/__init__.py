"""TV pairing: coordinator, device-side acceptor and dashboard linker."""

from .acceptor import IdentityStore, PairingAcceptor
from .codes import build_link_url, generate_code, render_qr_svg
from .coordinator import PairingCoordinator, PairingPhase, PairingResult, PairingView
from .linker import PairingLinker

__all__ = [
    "IdentityStore",
    "PairingAcceptor",
    "PairingCoordinator",
    "PairingLinker",
    "PairingPhase",
    "PairingResult",
    "PairingView",
    "build_link_url",
    "generate_code",
    "render_qr_svg",
]
