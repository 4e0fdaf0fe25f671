"""Windows Update discovery and installation through the Update Agent COM API."""

from pydantic import ValidationError

from node_maintainer.exceptions import InstallError, PowerShellError, UpdateDiscoveryError
from node_maintainer.logging_config import get_logger
from node_maintainer.models.updates import InstallItemResult, InstallResult, UpdateDescriptor, UpdateSet
from node_maintainer.powershell import PowerShellRunner, ps_quote

logger = get_logger(__name__)

DEFAULT_CRITERIA = "IsInstalled=0 and Type='Software' and IsHidden=0"

SEARCH_SCRIPT = """
$session = New-Object -ComObject Microsoft.Update.Session
$searcher = $session.CreateUpdateSearcher()
$result = $searcher.Search({criteria})
@($result.Updates | ForEach-Object {{
    [pscustomobject]@{{
        Title = $_.Title
        UpdateId = $_.Identity.UpdateID
        RebootRequired = ($_.InstallationBehavior.RebootBehavior -ne 0)
    }}
}}) | ConvertTo-Json -Compress
"""

INSTALL_SCRIPT = """
$ids = @({ids})
$session = New-Object -ComObject Microsoft.Update.Session
$searcher = $session.CreateUpdateSearcher()
$result = $searcher.Search({criteria})
$coll = New-Object -ComObject Microsoft.Update.UpdateColl
foreach ($u in $result.Updates) {{
    if ($ids -contains $u.Identity.UpdateID) {{
        if (-not $u.EulaAccepted) {{ $u.AcceptEula() }}
        [void]$coll.Add($u)
    }}
}}
if ($coll.Count -eq 0) {{ throw 'None of the requested updates are applicable any more' }}
$downloader = $session.CreateUpdateDownloader()
$downloader.Updates = $coll
[void]$downloader.Download()
$installer = $session.CreateUpdateInstaller()
$installer.Updates = $coll
$r = $installer.Install()
$items = for ($i = 0; $i -lt $coll.Count; $i++) {{
    $ur = $r.GetUpdateResult($i)
    [pscustomobject]@{{
        UpdateId = $coll.Item($i).Identity.UpdateID
        Title = $coll.Item($i).Title
        ResultCode = [int]$ur.ResultCode
        RebootRequired = [bool]$ur.RebootRequired
    }}
}}
[pscustomobject]@{{
    ResultCode = [int]$r.ResultCode
    RebootRequired = [bool]$r.RebootRequired
    Items = @($items)
}} | ConvertTo-Json -Depth 4 -Compress
"""


class WindowsUpdateDriver:
    """Searches for and installs pending software updates."""

    def __init__(self, runner: PowerShellRunner | None = None, criteria: str = DEFAULT_CRITERIA):
        self.runner = runner or PowerShellRunner()
        self.criteria = criteria

    def discover(self) -> UpdateSet:
        """
        Search Windows Update for applicable updates.

        Raises:
            UpdateDiscoveryError: If the search fails.
        """
        logger.info("Searching for pending updates")
        script = SEARCH_SCRIPT.format(criteria=ps_quote(self.criteria))
        try:
            # searching can be slow against WSUS; no timeout
            rows = self.runner.run_json_list(script, timeout=None)
            updates = [
                UpdateDescriptor(
                    title=r["Title"],
                    update_id=r["UpdateId"],
                    reboot_required=bool(r.get("RebootRequired")),
                )
                for r in rows
            ]
        except PowerShellError as e:
            raise UpdateDiscoveryError("Windows Update search failed", e.format_message())
        except (KeyError, ValidationError) as e:
            raise UpdateDiscoveryError("Unexpected Windows Update search output", str(e))

        logger.info(f"Found {len(updates)} pending update(s)")
        for u in updates:
            logger.debug(f"Pending: {u.title} ({u.update_id}) reboot={u.reboot_required}")
        return UpdateSet(updates=updates)

    def install(self, update_set: UpdateSet) -> InstallResult:
        """
        Download and install ``update_set``. Blocks until the installer returns.

        Raises:
            InstallError: If the installer cannot run or reports Failed/Aborted.
        """
        ids = ", ".join(ps_quote(i) for i in update_set.ids())
        script = INSTALL_SCRIPT.format(ids=ids, criteria=ps_quote(self.criteria))
        logger.info(f"Installing {update_set.count} update(s)")
        try:
            data = self.runner.run_json(script, timeout=None)
            result = InstallResult(
                result_code=data["ResultCode"],
                reboot_required=bool(data.get("RebootRequired")),
                items=[
                    InstallItemResult(
                        update_id=i["UpdateId"],
                        title=i.get("Title") or "",
                        result_code=i["ResultCode"],
                        reboot_required=bool(i.get("RebootRequired")),
                    )
                    for i in data.get("Items") or []
                ],
            )
        except PowerShellError as e:
            raise InstallError("Windows Update installation failed", e.format_message())
        except (KeyError, TypeError, ValidationError) as e:
            raise InstallError("Unexpected Windows Update installer output", str(e))

        if not result.succeeded:
            failed = ", ".join(f"{i.title or i.update_id} ({i.result_name})" for i in result.failed_items())
            raise InstallError(
                f"Windows Update installation finished with {result.result_name}",
                f"Failed updates: {failed or 'none reported'}",
            )
        return result
