from dataclasses import dataclass


@dataclass(frozen=True)
class TenantPolicy:
    tenant: str
    require_manual_approval: bool = False  # overrides room-level auto-approval
    vip_services_bypass: bool = True  # VIP + services enters Services Request directly
