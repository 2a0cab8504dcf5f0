from PySide6.QtCore import QCoreApplication, QSettings

import sys

from metricsearch.config import APP_ID, ORG_ID


def create_app(argv: list[str] | None = None) -> QCoreApplication:
    """Create (or reuse) and configure the QCoreApplication instance."""
    QCoreApplication.setOrganizationName(ORG_ID)
    QCoreApplication.setApplicationName(APP_ID)
    QSettings.setDefaultFormat(QSettings.Format.IniFormat)

    # Only one application object may exist per process
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication(sys.argv if argv is None else argv)
    return app
