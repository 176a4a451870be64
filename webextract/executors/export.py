"""Export extracted rows as a Power BI ready CSV with chart previews."""

import base64
import csv
import io
import json
import re
from datetime import datetime, timedelta
from string import Template
from typing import Any, Dict, List, Optional, Tuple

from playwright.sync_api import Error as PlaywrightError

from ..core.environment import ExecutionEnvironment
from ..core.exceptions import ResourceError, StorageError

DATA_SOURCE = "WebExtract"
PROCESSING_METHOD = "AI_Workflow"
CHART_ROW_LIMIT = 50
PREVIEW_VIEWPORT = {"width": 1200, "height": 630}

_LABEL_EXCLUDED = ("powerbi_id", "data_source", "extraction_date")
_VALUE_EXCLUDED = ("id", "record_index", "rank")
_PRICE_LIKE_RE = re.compile(r"^\$?\d")


def _to_number(value: Any) -> Optional[float]:
    """Numeric reading of a cell; None when the value is not numeric."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            number = float(text)
        except ValueError:
            return None
        return int(number) if number.is_integer() else number
    return None


def _number(value: Any, fallback: float) -> float:
    number = _to_number(value)
    return number if number else fallback


def _first(*values: Any) -> Any:
    for value in values:
        if value:
            return value
    return values[-1]


def _positional(item: Dict[str, Any], index: int) -> Any:
    keys = list(item)
    return item[keys[index]] if len(keys) > index else None


def _as_record(item: Any) -> Dict[str, Any]:
    if isinstance(item, dict):
        return item
    if isinstance(item, str):
        try:
            decoded = json.loads(item)
        except ValueError:
            return {"text": item}
        return decoded if isinstance(decoded, dict) else {"value": decoded}
    return {"value": item}


def _parse_delimited(data: str, env: ExecutionEnvironment) -> List[Dict[str, Any]]:
    lines = [line for line in data.split("\n") if line.strip()]
    env.log.info(f"Processing {len(lines)} lines of text data")
    if not lines:
        return []

    first_line = lines[0]
    if "," not in first_line and "\t" not in first_line:
        env.log.info("Created simple data structure from text lines")
        return [{"id": index + 1, "text": line.strip(), "value": index + 1} for index, line in enumerate(lines)]

    delimiter = "," if "," in first_line else "\t"
    reader = csv.reader(lines, delimiter=delimiter)
    headers = [header.strip() for header in next(reader)]
    env.log.info(f"Detected {'CSV' if delimiter == ',' else 'TSV'} format with headers: {', '.join(headers)}")
    rows = []
    for values in reader:
        values = [value.strip() for value in values]
        rows.append({header: values[index] if index < len(values) else "" for index, header in enumerate(headers)})
    return rows


def parse_rows(data: str, env: ExecutionEnvironment) -> List[Dict[str, Any]]:
    """Rows from JSON (double-encoded JSON included) or delimited text."""
    try:
        parsed = json.loads(data)
    except ValueError:
        parsed = _parse_delimited(data, env)
    else:
        if isinstance(parsed, str):
            try:
                parsed = json.loads(parsed)
                env.log.info("Parsed double-encoded JSON successfully")
            except ValueError:
                env.log.info("Input was JSON string; proceeding as text")
        env.log.info("Successfully parsed input as JSON")

    if not isinstance(parsed, list):
        parsed = [parsed]
    return [_as_record(item) for item in parsed]


def reshape_rows(rows: List[Dict[str, Any]], chart_type: str, today: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Give each row the minimal fields its chart kind needs; original fields are kept and win on clashes."""
    kind = chart_type.lower()
    today = today or datetime.utcnow()
    reshaped = []

    for index, item in enumerate(rows):
        first, second = _positional(item, 0), _positional(item, 1)
        if kind in ("bar", "column"):
            fields = {
                "category": _first(first, item.get("text"), item.get("name"), f"Item {index + 1}"),
                "value": _number(_first(second, item.get("value"), item.get("count"), index + 1), 0),
            }
        elif kind in ("pie", "doughnut"):
            fields = {
                "label": _first(first, item.get("text"), item.get("name"), f"Segment {index + 1}"),
                "value": _number(_first(second, item.get("value"), item.get("count"), 1), 1),
            }
        elif kind in ("line", "area", "trend"):
            default_date = (today - timedelta(days=len(rows) - index)).date().isoformat()
            fields = {
                "date": _first(first, item.get("date"), item.get("time"), default_date),
                "value": _number(_first(second, item.get("value"), item.get("count"), index), 0),
                "trend_period": f"Period_{index // 7 + 1}",
            }
        elif kind == "scatter":
            fields = {
                "x_value": _number(_first(first, item.get("x"), 0), 0),
                "y_value": _number(_first(second, item.get("y"), 0), 0),
                "size": _number(_first(item.get("size"), item.get("value"), 5), 5),
                "color_group": f"Group_{index % 4 + 1}",
            }
        elif kind in ("table", "matrix"):
            fields = {}
        else:
            fields = {"id": index + 1}
        reshaped.append({**fields, **item})

    return reshaped


def stamp_provenance(rows: List[Dict[str, Any]], chart_type: str, now: datetime) -> List[Dict[str, Any]]:
    stamp = int(now.timestamp() * 1000)
    return [
        {
            **row,
            "powerbi_id": f"PBI_{stamp}_{index}",
            "data_source": DATA_SOURCE,
            "extraction_date": now.isoformat(),
            "chart_type": chart_type,
            "processing_method": PROCESSING_METHOD,
            "record_index": index + 1,
        }
        for index, row in enumerate(rows)
    ]


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value


def rows_to_csv(rows: List[Dict[str, Any]]) -> str:
    if not rows:
        return ""
    headers: List[str] = []
    for row in rows:
        for key in row:
            if key not in headers:
                headers.append(key)

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=headers, restval="", lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({key: _cell(value) for key, value in row.items()})
    return buffer.getvalue().rstrip("\n")


def parse_value(value: Any) -> float:
    """Numeric value of a cell such as ``"$10.99"`` or ``"1,000"``."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        match = re.match(r"\s*[-+]?\d*\.?\d+(?:[eE][-+]?\d+)?", value.replace("$", "").replace(",", ""))
        return float(match.group(0)) if match else 0
    return 0


def detect_axes(rows: List[Dict[str, Any]]) -> Tuple[str, str]:
    sample = rows[0] if rows else {}
    keys = list(sample)

    label_key = next(
        (key for key in keys if isinstance(sample[key], str) and key not in _LABEL_EXCLUDED),
        keys[0] if keys else "text",
    )
    value_key = next(
        (
            key for key in keys
            if isinstance(sample[key], (int, float)) and not isinstance(sample[key], bool)
            and key not in _VALUE_EXCLUDED
        ),
        None,
    )
    if value_key is None:
        value_key = next(
            (key for key in keys if isinstance(sample[key], str) and _PRICE_LIKE_RE.match(sample[key])),
            keys[1] if len(keys) > 1 else "value",
        )
    return label_key, value_key


def build_visualization_config(rows: List[Dict[str, Any]], chart_type: str) -> Dict[str, Any]:
    label_key, value_key = detect_axes(rows)
    chart_rows = [
        {**row, value_key: parse_value(row.get(value_key))}
        for row in rows[:CHART_ROW_LIMIT]
    ]
    return {
        "type": chart_type,
        "data": chart_rows,
        "config": {"xAxis": label_key, "yAxis": value_key, "label": label_key, "color": "color_group"},
        "title": f"{chart_type[:1].upper()}{chart_type[1:]} Analysis",
        "description": f"Visualizing {len(rows)} records",
    }


_RECOMMENDATIONS = {
    "line": "### Line Chart (Trend Analysis)\n- **X-Axis**: date\n- **Y-Axis**: value\n"
            "- **Legend**: trend_period\n- **Filters**: Use extraction_date for time filtering",
    "pie": "### Pie Chart\n- **Legend**: label\n- **Values**: value\n"
           "- **Details**: Show data labels with percentages",
    "bar": "### Bar Chart\n- **Axis**: category\n- **Values**: value\n"
           "- **Filters**: Use chart_type for filtering multiple datasets",
    "scatter": "### Scatter Plot\n- **X-Axis**: x_value\n- **Y-Axis**: y_value\n"
               "- **Size**: size\n- **Legend**: color_group",
}
_RECOMMENDATION_ALIASES = {"trend": "line", "area": "line", "doughnut": "pie", "column": "bar"}

_TEMPLATE_GUIDE = Template("""# Power BI Template for $title Analysis

## Data Source
- File: $filename
- Records: $count
- Chart Type: $chart_type
- Generated: $generated

## Import Instructions
1. Open Power BI Desktop
2. Click "Get Data" then "Text/CSV"
3. Select your downloaded CSV file
4. Review data types and make adjustments if needed
5. Click "Load"

## Recommended Visualizations
$recommendation

## Key Performance Indicators (KPIs)
- **Total Records**: $count
- **Processing Method**: $method
- **Source**: $source

## Troubleshooting
- If dates appear as text, change data type to Date
- For numeric fields showing as text, change to Decimal Number
- Remove any duplicate powerbi_id entries if present
- Verify chart_type field for proper filtering
""")


def render_template_guide(chart_type: str, count: int, filename: str, now: datetime) -> str:
    kind = chart_type.lower()
    recommendation = _RECOMMENDATIONS.get(_RECOMMENDATION_ALIASES.get(kind, kind), "")
    return _TEMPLATE_GUIDE.substitute(
        title=f"{chart_type[:1].upper()}{chart_type[1:]}",
        filename=filename,
        count=count,
        chart_type=chart_type,
        generated=now.strftime("%Y-%m-%d %H:%M:%S"),
        recommendation=recommendation,
        method=PROCESSING_METHOD,
        source=DATA_SOURCE,
    )


def _script_json(value: Any) -> str:
    """JSON safe to embed inside a <script> element."""
    return json.dumps(value).replace("</", "<\\/")


_CHART_PAGE = Template("""<!doctype html>
<html>
  <head>
    <meta charset="utf-8" />
    <style>body { margin: 0; } #c { width: 1200px; height: 630px; }</style>
    <script src="https://cdn.jsdelivr.net/npm/chart.js@4.4.1/dist/chart.umd.min.js"></script>
  </head>
  <body>
    <canvas id="c" width="1200" height="630"></canvas>
    <script>
      const data = $config;
      const cfg = data.config || {};
      const rows = data.data;
      const type = data.type === 'trend' ? 'line' : (data.type || 'bar');
      const num = (v) => { const n = Number(v); return Number.isFinite(n) ? n : 0; };
      const points = type === 'scatter'
        ? rows.map(r => ({ x: num(r[cfg.xAxis]), y: num(r[cfg.yAxis]) }))
        : rows.map(r => num(r[cfg.yAxis]));
      new Chart(document.getElementById('c'), {
        type,
        data: {
          labels: rows.map(r => r[cfg.xAxis] ?? ''),
          datasets: [{ label: data.title, data: points }]
        },
        options: { responsive: false, animation: false, plugins: { title: { display: true, text: data.title } } }
      });
    </script>
  </body>
</html>""")

_HTML_REPORT = Template("""<!DOCTYPE html>
<html>
<head>
  <title>Data Visualization Report</title>
  <script src="https://cdn.jsdelivr.net/npm/chart.js"></script>
  <style>
    body { font-family: sans-serif; padding: 20px; background: #f4f4f5; }
    .container { max-width: 1000px; margin: 0 auto; background: white; padding: 20px; border-radius: 8px; }
    .chart-container { position: relative; height: 500px; width: 1000px; }
  </style>
</head>
<body>
  <div class="container">
    <h1>$title</h1>
    <p>$description</p>
    <div class="chart-container"><canvas id="myChart"></canvas></div>
  </div>
  <script>
    const data = $rows;
    const type = $type;
    const labelKey = $label_key;
    const valueKey = $value_key;
    const parseValue = (val) => {
      if (typeof val === 'number') return val;
      if (typeof val === 'string') return parseFloat(val.replace(/[$$,]/g, '')) || 0;
      return 0;
    };
    new Chart(document.getElementById('myChart'), {
      type: type,
      data: {
        labels: data.map(d => d[labelKey]),
        datasets: [{
          label: valueKey,
          data: type === 'scatter'
            ? data.map(d => ({ x: d[labelKey], y: parseValue(d[valueKey]) }))
            : data.map(d => parseValue(d[valueKey])),
          borderWidth: 1
        }]
      },
      options: { responsive: true, maintainAspectRatio: false, scales: { y: { beginAtZero: true } } }
    });
  </script>
</body>
</html>
""")


def render_html_report(rows: List[Dict[str, Any]], visualization: Dict[str, Any], chart_type: str) -> str:
    report_type = chart_type if chart_type in ("pie", "line", "scatter") else "bar"
    config = visualization["config"]
    return _HTML_REPORT.substitute(
        title=visualization["title"],
        description=visualization["description"],
        rows=_script_json(rows),
        type=_script_json(report_type),
        label_key=_script_json(config["xAxis"]),
        value_key=_script_json(config["yAxis"]),
    )


def _screenshot(browser, html: str) -> bytes:
    page = browser.new_page(viewport=PREVIEW_VIEWPORT)
    try:
        page.set_content(html, wait_until="networkidle")
        return page.screenshot(type="png")
    finally:
        page.close()


def render_chart_image(env: ExecutionEnvironment, visualization: Dict[str, Any]) -> Optional[str]:
    """PNG preview as a data URL, drawn with the run's shared browser."""
    html = _CHART_PAGE.substitute(config=_script_json(visualization))
    try:
        png = env.get_automation().run(_screenshot, html)
    except (PlaywrightError, ResourceError) as e:
        env.log.info(f"Could not render visualization image: {str(e)}")
        return None
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def export_to_powerbi(env: ExecutionEnvironment) -> bool:
    data = env.get_input("Data")
    if not data:
        env.log.error("input -> Data is not defined")
        return False
    chart_type = env.get_input("Chart Type")
    if not chart_type:
        env.log.error("input -> Chart Type is not defined")
        return False
    files = env.services.files
    if files is None:
        env.log.error("File storage is not configured")
        return False

    data = data if isinstance(data, str) else json.dumps(data)
    env.log.info(f"Processing {round(len(data) / 1024)}KB of data for Power BI export")
    env.log.info(f"Chart type: {chart_type}")

    now = datetime.utcnow()
    rows = parse_rows(data, env)
    env.log.info(f"Processing {len(rows)} data records")
    rows = stamp_provenance(reshape_rows(rows, chart_type, now), chart_type, now)

    csv_data = rows_to_csv(rows)
    filename = f"powerbi-export-{int(now.timestamp() * 1000)}.csv"
    try:
        file_id = files.store(csv_data.encode("utf-8"), "text/csv", filename)
    except StorageError as e:
        env.log.error(f"Power BI export failed: {e.message}")
        return False
    download_url = f"{env.services.download_url_prefix}/{file_id}"
    env.log.info(f"Auto-download URL: {download_url}")

    visualization = build_visualization_config(rows, chart_type)
    env.set_output("Power BI CSV", csv_data)
    env.set_output("Template File", render_template_guide(chart_type, len(rows), filename, now))
    env.set_output("Auto Download", download_url)
    env.set_output("Visualization Config", json.dumps(visualization))

    image = render_chart_image(env, visualization)
    if image:
        env.set_output("Visualization Image", image)
        env.set_output("Visualization Image URL", image)
        env.log.info("Visualization image generated")

    env.set_output("HTML Report", render_html_report(rows, visualization, chart_type))
    env.log.info(f"Exported {len(rows)} records as {chart_type} chart to {filename}")
    return True
