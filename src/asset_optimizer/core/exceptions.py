"""项目内使用的自定义异常定义。"""


class AssetOptimizerError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(AssetOptimizerError):
    """配置不合法时抛出。"""


class AssetError(AssetOptimizerError):
    """单个文件无法处理（读取失败、空文件等）。"""


class CodecError(AssetOptimizerError):
    """编码器执行失败。"""


class CommitError(AssetOptimizerError):
    """原子替换失败，文件保持处理前状态。"""


class DuplicateRenameError(AssetOptimizerError):
    """同一原始路径在一次运行中被重复登记。"""
