from sqlalchemy.ext.asyncio import AsyncSession

from vidtube.models.audit_log import AuditLog


async def log_action(
    session: AsyncSession,
    user_id: int | None,
    action: str,
    resource: str = "user",
    resource_id: str | None = None,
    details: dict | None = None,
    ip_address: str | None = None,
) -> None:
    """Stage an audit row in the caller's transaction; the caller commits."""
    session.add(
        AuditLog(
            user_id=user_id,
            action=action,
            resource=resource,
            resource_id=str(resource_id) if resource_id is not None else None,
            details=details,
            ip_address=ip_address,
        )
    )
    await session.flush()
