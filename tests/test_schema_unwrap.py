from dna_analyzer.nodes.schema_unwrap import unwrap_schema


def test_schema_echo_with_data_is_unwrapped():
    parsed = {"properties": {"analysis": {"foo": 1}}}
    assert unwrap_schema(parsed) == {"analysis": {"foo": 1}}


def test_schema_echo_with_nested_schema_is_left_unchanged():
    parsed = {
        "type": "object",
        "properties": {"analysis": {"type": "object", "properties": {"tone": {"type": "string"}}}},
    }
    assert unwrap_schema(parsed) is parsed


def test_properties_without_analysis_is_left_unchanged():
    parsed = {"properties": {"sections": []}}
    assert unwrap_schema(parsed) is parsed


def test_properties_alongside_real_sections_is_left_unchanged():
    parsed = {"properties": {"analysis": {}}, "sections": [{"title": "Hook"}]}
    assert unwrap_schema(parsed) is parsed


def test_properties_alongside_real_analysis_is_left_unchanged():
    parsed = {"properties": {"analysis": {"x": 1}}, "analysis": {"tone": "calm"}}
    assert unwrap_schema(parsed) is parsed


def test_blueprint_root_wrapper_is_unwrapped():
    inner = {"sections": [{"title": "Hook"}], "critique": "ok"}
    assert unwrap_schema({"blueprint": inner}) is inner


def test_blueprint_wrapper_without_sections_is_left_unchanged():
    parsed = {"blueprint": {"critique": "ok"}}
    assert unwrap_schema(parsed) is parsed


def test_already_unwrapped_is_unchanged():
    parsed = {"sections": [{"title": "Hook"}]}
    assert unwrap_schema(parsed) is parsed


def test_non_dict_values_pass_through():
    assert unwrap_schema([1, 2]) == [1, 2]
    assert unwrap_schema(None) is None
    assert unwrap_schema("text") == "text"
