"""Path normalization shared by registration and dispatch."""


def normalize_path(path: str) -> str:
    """Canonicalize a raw path.

    Collapses duplicate slashes, guarantees a single leading slash and strips
    the trailing slash. The empty path and the root both become "/".

        >>> normalize_path("foo//bar/")
        '/foo/bar'
        >>> normalize_path("")
        '/'
    """
    return "/" + "/".join(seg for seg in path.split("/") if seg)
