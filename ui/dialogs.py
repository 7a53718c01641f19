import flet as ft


def show_snack(page: ft.Page, message: str, *, error: bool = False):
    page.snack_bar = ft.SnackBar(
        ft.Text(message),
        bgcolor=ft.Colors.ERROR_CONTAINER if error else None,
    )
    page.snack_bar.open = True
    page.update()


def write_outcome_message(result, saved: str) -> str:
    """Snack text for a :class:`services.patient_service.WriteResult`."""
    if result.pushed:
        return f"{saved} and synced"
    if result.queued:
        return f"{saved}; will sync when the server is reachable"
    return f"{saved}; sync failed: {result.error}"


def sync_outcome_message(result) -> str:
    """Snack text for a :class:`services.sync_service.SyncRunResult`."""
    if result.succeeded:
        return f"Synced {result.synced} record(s)"
    if result.failed:
        return f"{result.failed} record(s) could not be synced; they stay queued"
    if result.error == "cancelled":
        return f"Sync stopped; {result.pending} record(s) stay queued"
    return f"Sync failed: {result.error}; {result.pending} record(s) stay queued"


def save_failure_message(what: str, exc: Exception) -> str:
    return f"Failed to save {what}: {exc}"
