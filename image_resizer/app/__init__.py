"""Qt-facing session controller and state objects.

- Single command entry: controller.dispatch(cmd, payload)
- UI binding via state QObjects (controller.crop)
- Python→UI notifications via controller.sessionChanged / controller.taskEvent
"""
