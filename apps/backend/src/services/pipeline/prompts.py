"""Prompt text sent to the generation backend."""

from __future__ import annotations

import json
from collections.abc import Sequence

from schemas.metadata import DomainMetadata
from schemas.pipeline import ConversationMessage


HISTORY_LIMIT = 10
ASSISTANT_TRUNCATE_CHARS = 500

SYSTEM_PROMPT = """\
You are an autonomous data engineer specialised in Microsoft Fabric.
For every request you:

1. Work out the pipeline, transformation or workflow the user wants.
2. Read the METADATA block, which lists the real lakehouses and tables.
3. Produce a complete Fabric pipeline definition in YAML.
4. Produce complete notebook code (PySpark) for every Notebook activity.
5. Produce the schedule block.

Rules:
- Always use lakehouse and table names from METADATA. If the user implies a
  table ("sales data"), pick the closest match ("sales_raw"). Do not ask for
  names that are already listed.
- Never write placeholder text such as "TODO", "Replace with actual..." or
  "your-...". The pipeline must deploy without human edits.
- Never leave inputs or outputs empty when an activity reads or writes data.
- Give notebooks descriptive ids such as "nb-transform-users-001".
- When you are given validation errors, fix them and output the full
  corrected pipeline.

Pipeline YAML schema:

pipeline:
  name: "PipelineName"
  description: "Optional description"
  activities:
    - name: "NotebookActivityName"
      type: "Notebook"
      notebookId: "nb-descriptive-name-001"
      inputs:
        - dataset: "Tables/source_table"
      outputs:
        - dataset: "Tables/destination_table"
      dependsOn: []
    - name: "CopyActivityName"
      type: "Copy"
      source:
        type: "Lakehouse"
        path: "Tables/source_table"   # or "Files/input.csv"
      sink:
        type: "Lakehouse"
        path: "Tables/destination_table"
      dependsOn: []
    - name: "DataflowActivityName"
      type: "Dataflow"
      dataflowId: "df-descriptive-name-001"
      dependsOn: []
  schedule:
    type: Once | EveryHour | Daily | Weekly
    interval: 1

Notebook rules:
- Read and write with spark.read / spark.write using Delta paths
  (Tables/<table>) or files (Files/<file>).
- Start each notebook with a "# Notebook: <notebook-id>" comment line.
- Read the sources, apply the requested transformation, write the result.

Output format (no "---" delimiters, no Markdown fences):

PIPELINE_YAML:
<yaml starting with 'pipeline:'>

NOTEBOOKS:
<complete code for each notebook activity>

For Copy activities use "source" and "sink", not "settings.source" or
"settings.target". If the request cannot be fulfilled, explain why.
"""

PLACEHOLDER_ARTIFACT = """\
PIPELINE_YAML:
pipeline:
  name: "Mock Sales Pipeline (Fallback)"
  description: "Generated because all AI models failed. Loads sales data and aggregates by region."
  activities:
    - name: "LoadSales"
      type: "Copy"
      source:
        type: "Lakehouse"
        path: "Files/sales_raw.csv"
      sink:
        type: "Lakehouse"
        path: "Tables/sales_clean"
    - name: "AggregateRegion"
      type: "Notebook"
      notebookId: "nb-agg-001"
      dependsOn: ["LoadSales"]
  schedule:
    type: "Daily"
    interval: 1

NOTEBOOKS:
# Notebook: nb-agg-001
df = spark.read.format("delta").load("Tables/sales_clean")
df_agg = df.groupBy("region").agg(sum("amount").alias("total_sales"))
df_agg.write.format("delta").mode("overwrite").save("Tables/sales_by_region")
"""


def format_conversation(conversation: Sequence[ConversationMessage]) -> str:
    """Render the last few turns; empty string when there are none."""
    recent = list(conversation)[-HISTORY_LIMIT:]
    if not recent:
        return ""

    lines = ["CONVERSATION HISTORY:"]
    for message in recent:
        if message.role == "user":
            lines.append(f"[User]: {message.content}")
            continue
        content = message.content
        if len(content) > ASSISTANT_TRUNCATE_CHARS:
            content = content[:ASSISTANT_TRUNCATE_CHARS] + "... [truncated]"
        lines.append(f"[Assistant]: {content}")
    lines.append("---")
    return "\n".join(lines) + "\n"


def compose_generation_prompt(
    prompt: str,
    metadata: DomainMetadata,
    conversation: Sequence[ConversationMessage] = (),
) -> str:
    metadata_json = json.dumps(metadata.to_wire(), indent=2)
    return (
        f"SYSTEM:\n{SYSTEM_PROMPT}\n\n"
        f"METADATA:\n{metadata_json}\n\n"
        f"{format_conversation(conversation)}"
        f"USER REQUEST:\n{prompt}"
    )
