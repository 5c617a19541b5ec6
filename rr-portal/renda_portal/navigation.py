from dataclasses import dataclass
from enum import Enum


class Icon(str, Enum):
    HOME = "home"
    USERS = "users"
    WALLET = "wallet"
    NETWORK = "network"
    GRADUATION_CAP = "graduation-cap"
    LIFE_BUOY = "life-buoy"
    TICKET = "ticket"
    FALLBACK = "circle"


# Explicit table; names not listed here render the fallback glyph
ICON_GLYPHS = {
    Icon.HOME: "⌂",
    Icon.USERS: "\U0001F465",
    Icon.WALLET: "\U0001F4B0",
    Icon.NETWORK: "\U0001F517",
    Icon.GRADUATION_CAP: "\U0001F393",
    Icon.LIFE_BUOY: "\U0001F6DF",
    Icon.TICKET: "\U0001F3AB",
    Icon.FALLBACK: "●",
}


def icon_for(name) -> str:
    try:
        icon = Icon(name)
    except ValueError:
        icon = Icon.FALLBACK
    return ICON_GLYPHS.get(icon, ICON_GLYPHS[Icon.FALLBACK])


@dataclass(frozen=True)
class NavItem:
    label: str
    path: str
    icon: str

    @property
    def glyph(self) -> str:
        return icon_for(self.icon)


DASHBOARD_NAV = (
    NavItem("Início", "/user/dashboard", Icon.HOME.value),
    NavItem("Indicações", "/user/referrals", Icon.USERS.value),
    NavItem("Comissões", "/user/commissions", Icon.WALLET.value),
    NavItem("Sub-afiliados", "/user/sub-affiliates", Icon.NETWORK.value),
    NavItem("Cupons", "/user/coupons", Icon.TICKET.value),
    NavItem("Treinamento", "/user/training", Icon.GRADUATION_CAP.value),
    NavItem("Suporte", "/user/support", Icon.LIFE_BUOY.value),
)

# Sections behind the dashboard, by the last path segment
SECTIONS = {item.path.rsplit("/", 1)[-1]: item for item in DASHBOARD_NAV[1:]}
