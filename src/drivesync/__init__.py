"""DriveSync - Google Drive 多项目增量同步服务."""

__version__ = "0.1.0"
