# database/seed.py
# SkillTrack — Seeds the starter topic catalog into the DB on first run.
# Imports from: database/models.py, utils/constants.py, utils/logger.py

import json

from sqlalchemy.orm import Session

from database.models import Topic
from utils.constants import LAYER_FUNDAMENTALS, LAYER_INTERMEDIATE, LAYER_PATTERNS
from utils.logger import get_logger

log = get_logger("database.seed")


def seed_topics(db: Session) -> None:
    """Insert the starter catalog. Called only when the topics table is empty."""
    topics = _build_topics()
    for t in topics:
        db.add(Topic(**t))
    db.flush()
    log.info("seed_complete", total=len(topics))


def _t(slug: str, name: str, layer: str, category: str, prerequisites: list[str], description: str) -> dict:
    """Helper to build a single topic row dict."""
    return {
        "slug": slug,
        "name": name,
        "layer": layer,
        "category": category,
        "prerequisites": json.dumps(prerequisites),
        "description": description,
    }


def _build_topics() -> list[dict]:
    F, I, P = LAYER_FUNDAMENTALS, LAYER_INTERMEDIATE, LAYER_PATTERNS
    return [

        # ─────────────────────────────────────────────
        # FUNDAMENTALS
        # ─────────────────────────────────────────────
        _t("let-const-usage", "Let/Const Usage", F, "Variable Handling", [],
           "Choosing let or const over var and avoiding needless reassignment."),
        _t("block-vs-function-scope", "Block vs Function Scope", F, "Variable Handling", ["let-const-usage"],
           "How block scope differs from function scope."),
        _t("array-map", "Array.map", F, "Array Methods", [],
           "Transforming every element into a new array."),
        _t("array-filter", "Array.filter", F, "Array Methods", [],
           "Selecting the elements that satisfy a predicate."),
        _t("array-reduce", "Array.reduce", F, "Array Methods", ["array-map"],
           "Folding an array into a single value with an explicit initial value."),
        _t("array-method-chaining", "Array Method Chaining", F, "Array Methods", ["array-map", "array-filter"],
           "Composing map, filter and reduce into readable pipelines."),
        _t("object-destructuring", "Object Destructuring", F, "Modern Syntax", [],
           "Pulling named properties out of objects."),
        _t("spread-operator", "Spread Operator", F, "Modern Syntax", ["object-destructuring"],
           "Copying and merging arrays and objects without mutation."),
        _t("arrow-functions", "Arrow Functions", F, "Functions", [],
           "Concise function syntax and lexical this."),
        _t("default-parameters", "Default Parameters", F, "Functions", ["arrow-functions"],
           "Supplying fallback values for missing arguments."),
        _t("callback-functions", "Callback Functions", F, "Functions", ["arrow-functions"],
           "Passing functions to be invoked later."),
        _t("closure-basics", "Closure Basics", F, "Closures", ["arrow-functions"],
           "Functions that capture variables from their defining scope."),
        _t("promise-basics", "Promise Basics", F, "Async", ["callback-functions"],
           "Creating and consuming promises."),
        _t("async-await-basics", "Async/Await Basics", F, "Async", ["promise-basics"],
           "Writing asynchronous code with async and await."),
        _t("try-catch", "Try/Catch", F, "Error Handling", [],
           "Catching and handling thrown errors."),
        _t("fetch-error-checking", "Fetch Error Checking", F, "Error Handling", ["async-await-basics", "try-catch"],
           "Checking response status and failures from fetch."),
        _t("jsx-syntax", "JSX Syntax", F, "JSX", [],
           "Writing markup in JSX."),
        _t("jsx-expressions", "JSX Expressions", F, "JSX", ["jsx-syntax"],
           "Embedding JavaScript expressions in JSX."),
        _t("jsx-conditional-rendering", "JSX Conditional Rendering", F, "JSX", ["jsx-expressions"],
           "Rendering content conditionally."),
        _t("jsx-list-rendering", "JSX List Rendering", F, "JSX", ["array-map", "jsx-expressions"],
           "Rendering arrays of elements."),
        _t("jsx-keys", "JSX Keys", F, "JSX", ["jsx-list-rendering"],
           "Stable keys for list items."),
        _t("usestate-basics", "useState Basics", F, "State", ["jsx-syntax"],
           "Declaring and updating component state."),
        _t("state-immutability", "State Immutability", F, "State", ["usestate-basics", "spread-operator"],
           "Updating state without mutating it."),

        # ─────────────────────────────────────────────
        # INTERMEDIATE
        # ─────────────────────────────────────────────
        _t("for-loop-basics", "For Loop Basics", I, "Loops", [],
           "Classic counted loops."),
        _t("for-of-loops", "For...of Loops", I, "Loops", ["for-loop-basics"],
           "Iterating over iterables."),
        _t("this-binding", "this Binding", I, "Context", ["closure-basics"],
           "How this is bound at call time."),
        _t("useeffect-basics", "useEffect Basics", I, "useEffect Mastery", ["usestate-basics"],
           "Running side effects after render."),
        _t("useeffect-dependencies", "useEffect Dependencies", I, "useEffect Mastery", ["useeffect-basics"],
           "Declaring complete dependency arrays."),
        _t("useeffect-cleanup", "useEffect Cleanup", I, "useEffect Mastery", ["useeffect-basics"],
           "Releasing subscriptions and timers."),
        _t("props-basics", "Props Basics", I, "Props & Components", ["jsx-syntax"],
           "Passing data into components."),
        _t("children-prop", "Children Prop", I, "Props & Components", ["props-basics"],
           "Rendering nested content through children."),
        _t("component-composition", "Component Composition", I, "Component Patterns", ["props-basics", "children-prop"],
           "Building components out of smaller components."),
        _t("event-handlers", "Event Handlers", I, "Event Handling", ["jsx-syntax", "arrow-functions"],
           "Responding to user events."),
        _t("fetch-basics", "Fetch Basics", I, "API Integration", ["async-await-basics"],
           "Requesting data over HTTP with fetch."),
        _t("loading-states", "Loading States", I, "API Integration", ["usestate-basics", "fetch-basics"],
           "Tracking request progress in state."),

        # ─────────────────────────────────────────────
        # PATTERNS
        # ─────────────────────────────────────────────
        _t("custom-hook-basics", "Custom Hook Basics", P, "Custom Hooks", ["usestate-basics", "useeffect-basics"],
           "Extracting reusable stateful logic into hooks."),
        _t("context-basics", "Context Basics", P, "Context", ["props-basics"],
           "Sharing values without prop drilling."),
        _t("usecontext-hook", "useContext Hook", P, "Context", ["context-basics"],
           "Reading context from function components."),
        _t("react-memo", "React.memo", P, "Performance Optimization", ["component-composition"],
           "Skipping re-renders for unchanged props."),
        _t("usememo-basics", "useMemo Basics", P, "Performance Optimization", ["usestate-basics"],
           "Memoising expensive derived values."),
        _t("usecallback-basics", "useCallback Basics", P, "Performance Optimization", ["event-handlers", "closure-basics"],
           "Stable callback identities."),
        _t("promise-all", "Promise.all", P, "Advanced Async", ["promise-basics"],
           "Running independent promises concurrently."),
        _t("usereducer-basics", "useReducer Basics", P, "Reducers", ["usestate-basics", "array-reduce"],
           "Managing complex state transitions with a reducer."),
        _t("error-boundary-basics", "Error Boundary Basics", P, "Error Boundaries", ["try-catch", "component-composition"],
           "Catching render errors in a component subtree."),
    ]
