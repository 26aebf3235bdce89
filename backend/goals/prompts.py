"""Prompt templates for goal decomposition."""

SYSTEM_PROMPT = (
    "You are an expert project planner that breaks down goals into actionable tasks. "
    "Always respond with valid JSON only."
)


DECOMPOSE_PROMPT = """\
You are a professional project planner. Break down the following goal into \
actionable tasks with suggested deadlines and dependencies.

Goal: "{goal_text}"

Please provide a detailed task breakdown in JSON format with the following structure:
{{
  "tasks": [
    {{
      "title": "Task name",
      "description": "Detailed description of what needs to be done",
      "estimated_days": 3,
      "priority": "low" | "medium" | "high",
      "dependencies": ["titles of tasks this task depends on, empty array if none"],
      "task_order": 1
    }}
  ],
  "reasoning": "Brief explanation of the breakdown strategy and timeline logic"
}}

Important guidelines:
- Break down the goal into specific, actionable tasks
- Give every task a distinct title
- estimated_days is a whole number of days, at least 1
- Consider realistic timelines based on the goal complexity
- Identify dependencies between tasks (which tasks must be completed before others)
- Dependencies must use the exact titles of other tasks and must not form cycles
- Prioritize tasks appropriately
- Ensure tasks are sequential and logical
- Return ONLY valid JSON, no additional text or markdown formatting"""
