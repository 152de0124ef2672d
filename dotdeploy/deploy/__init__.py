"""部署：增量同步、远程命令、流程编排"""

from dotdeploy.deploy.remote import RemoteExecutor
from dotdeploy.deploy.sequencer import DeployRequest, DeploySequencer
from dotdeploy.deploy.session import SftpSession, SshShell
from dotdeploy.deploy.sync import SyncEngine, decide_upload
from dotdeploy.deploy.template import CommandVariables, expand_command

__all__ = [
    "CommandVariables",
    "DeployRequest",
    "DeploySequencer",
    "RemoteExecutor",
    "SftpSession",
    "SshShell",
    "SyncEngine",
    "decide_upload",
    "expand_command",
]
