from typing import List


def clean_path(path: str) -> str:
    """
    Normalize a path: collapse duplicate slashes, drop ``.`` and resolve ``..``.

    Args:
        path (str): Any path, absolute or relative. None is treated as the root.

    Returns:
        str: The normalized path, always starting with "/".
    """
    if path is None:
        return "/"
    stack: List[str] = []
    for part in path.split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if stack:
                stack.pop()
        else:
            stack.append(part)
    return "/" + "/".join(stack)


class HPSSEndpoint:
    """
    An HPSS namespace rooted at a base directory.

    Every path handed to the client is interpreted relative to ``root_path``,
    which is itself relative to the hsi working directory unless absolute.

    Args:
        root_path (str): Base directory on HPSS, ``init_dir`` in the config.
    """
    def __init__(self, root_path: str = ".") -> None:
        self.root_path = root_path

    def full_path(self, path_suffix: str) -> str:
        """
        Constructs the path hsi should be given for ``path_suffix``.

        Args:
            path_suffix (str): The path relative to the endpoint root.

        Returns:
            str: root_path followed by the cleaned suffix.
        """
        return f"{self.root_path.rstrip('/')}{clean_path(path_suffix)}"

    def abs_path(self, path: str, cwd: str) -> str:
        """
        Convert an endpoint path to an absolute HPSS path.

        Args:
            path (str): Endpoint-relative path, or an absolute path under ``cwd``.
            cwd (str): The hsi working directory.

        Returns:
            str: The absolute path.
        """
        if path.startswith(cwd.rstrip("/") + "/"):
            return clean_path(path)
        if self.root_path.startswith("/"):
            return self.full_path(path)
        return clean_path(f"{cwd}/{self.full_path(path)}")

    def rel_path(self, path: str, cwd: str) -> str:
        """
        Convert an absolute HPSS path back to an endpoint-relative one.
        """
        root = clean_path(self.root_path if self.root_path.startswith("/") else f"{cwd}/{self.root_path}")
        path = clean_path(path)
        if path == root:
            return ""
        if path.startswith(root.rstrip("/") + "/"):
            return path[len(root.rstrip("/")) + 1:]
        return path.lstrip("/")
