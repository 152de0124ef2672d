"""dotdeploy - .NET 发布、交叉编译与 SFTP 部署工具"""

__version__ = "0.3.0"
