"""发布模块"""

from dotdeploy.publish.publisher import PublishOptions, Publisher, StatusCallback

__all__ = ["PublishOptions", "Publisher", "StatusCallback"]
