"""
Instruction Probes

The fixed instruction-following probe set. Every run uses this one canonical
list, in this order.
"""

from model_gauntlet.suite_loader import InstructionProbe

INSTRUCTION_SYSTEM_PROMPT = (
    "You are an instruction-following test system. Output ONLY the exact requested content. "
    "Any deviation = failure. No preamble. No explanation. Raw output only."
)

INSTRUCTION_PROBES: list[InstructionProbe] = [
    # Basic compliance
    InstructionProbe(
        prompt="Output exactly these three words in this order, separated by single spaces: Red Blue Green. Do not add punctuation, quotes, or anything else.",
        expected_result="Red Blue Green",
        validation_kind="words",
        strict_order=True,
        category="compliance",
    ),
    InstructionProbe(
        prompt="Calculate: 7 + 8. Respond with the single integer result ONLY. No text, no symbols, no explanation.",
        expected_result="15",
        validation_kind="numeric",
        category="compliance",
    ),
    # JSON output
    InstructionProbe(
        prompt="Return a JSON object with one field 'status' set to 'ok'. Output ONLY valid JSON, no markdown code blocks, no explanation, no text before or after.",
        expected_result='{"status":"ok"}',
        validation_kind="json",
        category="json",
    ),
    InstructionProbe(
        prompt="Return a JSON array containing exactly the numbers 1,2,3 as integers, *NOT* strings. Output ONLY the JSON array, no markdown, no text, nothing else.",
        expected_result="[1,2,3]",
        validation_kind="json",
        category="json",
    ),
    InstructionProbe(
        prompt="Create a JSON object with two fields: 'name' set to 'Alice' and 'age' set to the integer 25. Output ONLY the JSON, no markdown, no explanation.",
        expected_result='{"name":"Alice","age":25}',
        validation_kind="json",
        category="json",
    ),
    # Tool calling format
    InstructionProbe(
        prompt="You have a tool called 'get_weather' that takes a parameter 'city' (string). Call this tool for London. Return ONLY this JSON, nothing else: {\"tool\":\"get_weather\",\"parameters\":{\"city\":\"London\"}}",
        expected_result='{"tool":"get_weather","parameters":{"city":"London"}}',
        validation_kind="json",
        category="tool_calling",
    ),
    InstructionProbe(
        prompt="Call the function 'list_projects' with no parameters. Return ONLY the JSON tool call in this format: {\"tool\":\"list_projects\",\"parameters\":{}}",
        expected_result='{"tool":"list_projects","parameters":{}}',
        validation_kind="json",
        category="tool_calling",
    ),
    InstructionProbe(
        prompt="You have a function 'calculate' that takes two integer parameters: 'a' and 'b'. Call it with a=10 and b=20. Return ONLY: {\"tool\":\"calculate\",\"parameters\":{\"a\":10,\"b\":20}}",
        expected_result='{"tool":"calculate","parameters":{"a":10,"b":20}}',
        validation_kind="json",
        category="tool_calling",
    ),
    # Format constraints
    InstructionProbe(
        prompt="List three colors, one per line, no numbers, no bullets, no punctuation. Just the color names.",
        expected_result="Red\nBlue\nGreen",
        validation_kind="lines",
        strict_order=False,
        category="format",
    ),
    InstructionProbe(
        prompt="Output the word 'SUCCESS' in all caps. Nothing else. No punctuation, no explanation.",
        expected_result="SUCCESS",
        validation_kind="exact",
        category="format",
    ),
    # Simple calculations
    InstructionProbe(
        prompt="What is 12 * 3? Respond with only the number.",
        expected_result="36",
        validation_kind="numeric",
        category="calculation",
    ),
    InstructionProbe(
        prompt="Calculate 100 - 37. Output only the integer result.",
        expected_result="63",
        validation_kind="numeric",
        category="calculation",
    ),
    # Boolean output
    InstructionProbe(
        prompt="Is 10 greater than 5? Respond with ONLY 'true' or 'false' in lowercase.",
        expected_result="true",
        validation_kind="boolean",
        category="boolean",
    ),
    InstructionProbe(
        prompt="Is 'cat' the same as 'dog'? Respond with ONLY 'true' or 'false' in lowercase.",
        expected_result="false",
        validation_kind="boolean",
        category="boolean",
    ),
]
