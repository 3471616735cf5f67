from copypaist.workspace.files import ProjectFiles

__all__ = ["ProjectFiles"]
