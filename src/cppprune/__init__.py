"""
cppprune - dead-code elimination for flattened single-file C++ programs

Simple API:

    from cppprune import optimize_file, Optimizer

    # Remove everything main() does not need
    text = optimize_file("solution.cpp", compile_args=["-std=c++17"])

    # Keep conditionals that mention ONLINE_JUDGE, get a summary back
    result = Optimizer(macros_to_keep=["ONLINE_JUDGE"]).optimize_result("solution.cpp")
    print(result.to_dict()["summary"])
"""


def optimize_file(*args, **kwargs):
    """Lazy import wrapper for optimize_file to avoid heavy imports at package import time."""
    from .optimizer import optimize_file as _optimize_file

    return _optimize_file(*args, **kwargs)


def Optimizer(*args, **kwargs):
    """Lazy import wrapper returning an optimizer.Optimizer instance."""
    from .optimizer import Optimizer as _Optimizer

    return _Optimizer(*args, **kwargs)


from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("cppprune")
except PackageNotFoundError:
    # Fallback for development/uninstalled package
    __version__ = "unknown"

__all__ = ["optimize_file", "Optimizer", "__version__"]
