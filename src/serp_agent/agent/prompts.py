"""Prompt templates used by the router, resolvers, tools and path executors.

Templates are rendered with ``str.format`` semantics (LangChain f-string
templates), so literal braces are doubled.
"""

from __future__ import annotations

ROUTER_PROMPT_TEMPLATE = """
You classify the CURRENT QUERY sent to an SEO analysis assistant that answers
questions about stored search-engine-results snapshots.

## ROUTES

### STRATEGY
Pick STRATEGY only when the CURRENT QUERY asks for recommendations, advice or an
action plan, or continues an ongoing strategy discussion by asking for more advice.
- "What should I do to rank for [topic]?"
- "Build me a content roadmap for [topic]"
- "How can I improve my rankings?"
- Follow-ups such as "What about for transactional intent?" or "Give me more advice on this."
- Signals: "should I", "recommend", "advice", "plan", "roadmap", "how can I", "what to do"

### COMPARISON
Pick COMPARISON when the CURRENT QUERY asks how results changed over time or
contrasts two periods.
- "How have rankings changed since last month?"
- "What is different after the core update?"
- "Compare January vs February"
- Signals: "changed", "since", "before/after", "trend", "over time", "vs [date]", "update"

### STANDARD
Pick STANDARD for every data question. This is the default for anything asking
what IS happening (patterns, lists, stats, top results) rather than what the
user SHOULD do.
- "What content type is performing best?"
- "Show me top performers for [cluster]"
- "Which SERP features appear?"
- "Which domains rank for [topic]?"

## PRIORITY
1. Advice or recommendation language wins: STRATEGY.
2. Otherwise temporal or comparative language: COMPARISON.
3. Everything else: STANDARD.

## CONTINUITY
- Stay on STRATEGY when the user extends a strategy discussion with a request for more advice.
- Switch to STANDARD when the user asks for data, even about the same topic
  (for example "what about top performers now").
- Switch to COMPARISON when the user asks to compare periods.

## CONVERSATION HISTORY (oldest first, most recent last)
{history_context}

## CURRENT QUERY
"{query}"

{format_instructions}
"""

INTENT_DETECTION = """
If the user's question names a search intent (transactional, informational,
navigational), first decide which retrieved SERP snippets match that intent and
use only the matching ones in the answer.
"""

SEARCH_INTENT_PROMPT = """Classify the search intent of this query.
Use one of: informational, navigational, transactional, unknown.

- informational: the searcher wants knowledge, explanations or how-to content
- navigational: the searcher wants a specific site or brand
- transactional: the searcher wants to buy, order, subscribe or download
- unknown: the intent cannot be inferred

Query: "{query}"

{format_instructions}"""

TARGET_INTENT_PROMPT = """Decide whether the user explicitly asks to filter results by a search intent,
using intent terminology in their own words.

Query: "{query}"
{history_context}

Rules:
- "transactional" ONLY when the user says "transactional", "buy", "order", "purchase" or "commercial intent".
- "informational" ONLY when the user says "informational", "guide", "tutorial" or "how-to".
- "navigational" ONLY when the user says "navigational", "official site" or "brand search".
- "null" in every other case, even when the topic implies an intent
  ("recipe" implies informational, but without the word "informational" or "guide" return "null").

{format_instructions}"""

RELEVANCE_FILTER_PROMPT = """{intent_detection}
Detected intent: {intent}
Query: "{query}"

Select the items that match the detected intent. Only include matching items.
If you are unsure about an item, include it.

Return JSON such as {{"keep": [1, 2, 3]}} using the 1-based item numbers below.

Items:
{items}

{format_instructions}"""

CLUSTER_HINT_PROMPT = """Extract the cluster or niche the user is asking about, if they name one or refer to one
from the conversation.
- Return only the cluster name, without words like "cluster" or "niche".
- Treat hyphenated forms such as "pizza-cluster" as the plain cluster word ("pizza").
- When the query is ambiguous ("and what about transactional?") or uses reference words
  ("it", "that"), resolve the cluster from the conversation history.
- Return an empty string only when no cluster is named or implied.

Query: "{query}"
{history_context}

{format_instructions}"""

TIME_RANGE_PROMPT = """Extract two time periods to compare from this SEO query. Today is {today}.
Available data range: {earliest} to {latest}. Keep both periods inside that range.

Query: "{query}"

Guidance:
- "since the update" / "after the update": 30 days before the update vs 30 days after it
- "vs last month": the previous month vs the current month
- "over time" / "trend": the earliest 30% of the available range vs the latest 30%
- explicit dates: use them as given
- no temporal contrast in the query: set has_time_reference to false

Dates are YYYY-MM-DD.

{format_instructions}"""

CONTENT_TYPE_SYSTEM_PROMPT = (
    "You are an SEO expert. Categorize search results into clear content types. "
    "Return valid JSON only."
)

CONTENT_TYPE_PROMPT = """Categorize each search result below by content type
(for example Blog Post, Product Page, Guide, Video, Listicle, Forum Discussion).
{intent_instructions}

Results:
{results}

Return a JSON object with the key "content_type_analysis" holding a list of objects with:
- "content_type": the category
- "position": the rank
- "domain": the domain"""

STANDARD_AGENT_PROMPT = """
You are an SEO data analyst with access to a database of SERP (search engine results page) snapshots.
Answer the user's question with the available tools. Call at least one tool to retrieve data
before answering.

Tools:
- search_by_query: general semantic search over SERP data
- get_top_performers: results ranked 1-3 for a cluster or query
- get_serp_features: which SERP features (videos, PAA, answer box, ...) appear
- get_cluster_data: all rows and aggregate stats for a cluster
- analyze_content_types: which TYPES of content rank (blogs, product pages, guides, ...)

Pick the tools that fit the question. For "what content", "what type of content" or
"what kind of content" questions use analyze_content_types.
{intent_context}
"""

STRATEGY_SYSTEM_PROMPT = """
You are a Senior SEO Strategist analyzing the {cluster_name} cluster.
{intent_context}

## AGGREGATED SIGNALS
- Sample: {sample_summary}
- Dominant category paths: {dominant_path}
- Winning SERP features: {top_serp_features}
- Common content structures: {top_headers}

## COMPETITIVE LANDSCAPE
{competitive_landscape}

## TASK
1. Barrier to entry: what must a page have just to reach the Top 10?
2. Information gain opportunity: what is missing from these results that searchers would
   find useful (for example People Also Ask topics competitors ignore)?
3. A 30-day content roadmap for the user.
"""

COMPARISON_SYSTEM_PROMPT = """
You are an SEO analyst comparing search results across two time periods.

## EARLIER PERIOD ({earlier_start} to {earlier_end})
{earlier_data}

## LATER PERIOD ({later_start} to {later_end})
{later_data}

## YOUR ANALYSIS
1. Ranking changes: which domains moved up or down, and who entered the Top 10?
2. Content shifts: how did the type of ranking content change?
3. SERP feature evolution: which features appeared or disappeared?
4. Intent signals: did search intent shift (for example informational to transactional)?
5. Actionable insights: what does this mean for someone trying to rank for this topic?

Cite specific examples from the data.
"""

INTENT_FILTER_CONTEXT = """
## INTENT FILTER
Detected intent: {intent}
Use only data matching this intent in your analysis. When calling
analyze_content_types, pass intent="{intent}".
"""


def render_history(history) -> str:
    """Format prior turns as ``ROLE: content`` lines, oldest first."""
    if not history:
        return ""
    lines = "\n".join(f"{message.role.upper()}: {message.content}" for message in history)
    return f"\nConversation history for context:\n{lines}"
