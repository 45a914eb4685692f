from cobrowse.memory import Memory, format_tool_label
from cobrowse.models import ToolCall, ToolResult


def test_history_is_a_sliding_window():
    memory = Memory(max_history=3)
    for i in range(5):
        memory.record("user", f"m{i}")

    assert [m.content for m in memory.history] == ["m2", "m3", "m4"]
    assert memory.history_payload()[0]["role"] == "user"
    assert memory.history_payload()[0]["createdAt"].endswith("Z")


def test_flow_items_move_from_running_to_final_status():
    memory = Memory()
    memory.start_flow(ToolCall(id="a", name="fill_input", args={}))
    memory.start_flow(ToolCall(id="b", name="click_element", args={}))

    assert [item.status for item in memory.flow] == ["running", "running"]
    assert memory.flow[0].detail == "Executing action..."

    memory.finish_flow(ToolResult(tool_call_id="a", name="fill_input", success=True, output="name updated"))
    memory.finish_flow(ToolResult(tool_call_id="b", name="click_element", success=False, output="Not found."))

    assert [(i.label, i.status, i.detail) for i in memory.flow] == [
        ("Fill Input", "success", "name updated"),
        ("Click Element", "failed", "Not found."),
    ]
    assert "❌ Click Element: Not found." in memory.format_flow()


def test_flow_is_bounded():
    memory = Memory(max_flow_items=10)
    for i in range(12):
        memory.start_flow(ToolCall(id=str(i), name="scroll_by", args={}))

    assert len(memory.flow) == 10
    assert memory.flow[0].id == "2"


def test_format_tool_label():
    assert format_tool_label("navigate_to_section") == "Navigate To Section"
    assert format_tool_label("scroll_by") == "Scroll By"
