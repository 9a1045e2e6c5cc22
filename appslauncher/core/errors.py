class AppsLauncherError(Exception):
    """Base class for every error raised by the launcher core."""


class UnknownApp(AppsLauncherError):
    """Identity is not present in the app catalog."""


# --------------------------
# Release source
# --------------------------
class ReleaseSourceError(AppsLauncherError):
    """Release lookup failure."""


class InvalidSourceURL(ReleaseSourceError):
    pass


class NotFound(ReleaseSourceError):
    pass


class RateLimited(ReleaseSourceError):
    pass


class Timeout(ReleaseSourceError):
    pass


class MalformedResponse(ReleaseSourceError):
    pass


# --------------------------
# Download
# --------------------------
class DownloadError(AppsLauncherError):
    pass


class AlreadyDownloading(DownloadError):
    pass


class DownloadFailed(DownloadError):
    pass


class DownloadCancelled(DownloadFailed):
    """Transfer torn down by an explicit cancel request."""


# --------------------------
# Install
# --------------------------
class InstallError(AppsLauncherError):
    pass


class UnknownInstallerType(InstallError):
    pass


class AlreadyInstalling(InstallError):
    pass


class InstallationFailed(InstallError):
    pass


class ExtractionFailed(InstallError):
    pass


class UpdateInterrupted(InstallError):
    """Uninstall half of an update succeeded, the reinstall half did not."""


class ExecutableNotFound(AppsLauncherError):
    """Discovery heuristics exhausted. Recoverable through manual selection."""


# --------------------------
# Launch
# --------------------------
class LaunchError(AppsLauncherError):
    pass


class NotInstalled(LaunchError):
    pass


class ExecutableMissing(LaunchError):
    pass


class AlreadyRunning(LaunchError):
    pass


class LaunchFailed(LaunchError):
    pass
