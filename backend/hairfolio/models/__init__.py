from hairfolio.models.designer import DesignerDocument

__all__ = ["DesignerDocument"]
