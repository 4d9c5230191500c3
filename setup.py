"""
capiscale 项目构建配置
"""

from setuptools import setup, find_packages
import os

# 读取 README 文件
def read_readme():
    if not os.path.exists("README.md"):
        return ""
    with open("README.md", "r", encoding="utf-8") as fh:
        return fh.read()

# 读取版本信息
def read_version():
    with open("capiscale/__init__.py", "r", encoding="utf-8") as fh:
        for line in fh:
            if line.startswith("_FALLBACK_VERSION"):
                return line.split("=")[1].strip().strip('"').strip("'")
    return "0.1.0"

def _read_lines(path):
    if not os.path.exists(path):
        return []
    with open(path, "r", encoding="utf-8") as fh:
        return [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="capiscale-core",
    version=read_version(),
    description="Cluster API node-group scaling layer for cluster autoscalers",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=("tests", "tests.*", "examples")),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: System :: Clustering",
        "Topic :: System :: Distributed Computing",
    ],
    python_requires=">=3.9",
    install_requires=_read_lines("requirements.txt"),
    extras_require={
        "dev": _read_lines("requirements-dev.txt"),
    },
    include_package_data=True,
    package_data={
        "capiscale": [
            "config/*.yaml",
        ],
    },
    zip_safe=False,
    keywords=[
        "kubernetes",
        "cluster-api",
        "autoscaling",
        "node-group",
        "cluster",
    ],
)
