"""runpack - PHP 应用运行时构建与进程托管工具"""

__version__ = "0.3.0"
