from storage.shadow_store import ShadowCourse, ShadowEvent, ShadowStore

__all__ = ['ShadowCourse', 'ShadowEvent', 'ShadowStore']
