"""
Challenge catalog: practice exercises graded against a reference solution.

Solutions are written in the DuckDB dialect used by the engine instances.
"""

from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, List, Optional, Union

from sqldojo.domain.models import Challenge, Difficulty, SchemaId
from sqldojo.errors import UnknownChallengeError


def _challenge(**kwargs) -> Challenge:
    return Challenge.model_validate(kwargs)


CHALLENGES: List[Challenge] = [
    _challenge(
        id="emp-basic-list",
        title="Employee roster",
        prompt="List employee full names with their titles, sorted alphabetically by last name.",
        difficulty="beginner",
        points=50,
        database="employees",
        starter_sql="SELECT first_name, last_name, title FROM employees ORDER BY last_name;",
        solution_sql=(
            "SELECT first_name || ' ' || last_name AS employee, title "
            "FROM employees ORDER BY last_name;"
        ),
        concepts=["SELECT", "ORDER BY"],
    ),
    _challenge(
        id="emp-count-dept",
        title="Headcount by department",
        prompt="Show how many employees sit in each department, highest first.",
        difficulty="beginner",
        points=55,
        database="employees",
        starter_sql=(
            "SELECT d.name AS department, COUNT(*) AS employee_count FROM departments d "
            "JOIN employees e ON e.department_id = d.id GROUP BY d.name;"
        ),
        solution_sql=(
            "SELECT d.name AS department, COUNT(*) AS employee_count FROM departments d "
            "JOIN employees e ON e.department_id = d.id GROUP BY d.name "
            "ORDER BY employee_count DESC;"
        ),
        concepts=["GROUP BY", "COUNT", "JOIN"],
    ),
    _challenge(
        id="emp-hired-after-2020",
        title="Recent hires",
        prompt="Return employees hired from 2020 onward with their hire dates, oldest to newest.",
        difficulty="beginner",
        points=55,
        database="employees",
        starter_sql=(
            "SELECT first_name, last_name, hire_date FROM employees "
            "WHERE hire_date >= '2020-01-01';"
        ),
        solution_sql=(
            "SELECT first_name, last_name, hire_date FROM employees "
            "WHERE hire_date >= '2020-01-01' ORDER BY hire_date;"
        ),
        concepts=["WHERE", "DATE"],
    ),
    _challenge(
        id="emp-salary-threshold",
        title="High earners",
        prompt="Find employees making $120k or more, ordered by salary descending.",
        difficulty="beginner",
        points=60,
        database="employees",
        starter_sql=(
            "SELECT first_name, last_name, title, salary FROM employees "
            "WHERE salary >= 120000 ORDER BY salary DESC;"
        ),
        solution_sql=(
            "SELECT first_name, last_name, title, salary FROM employees "
            "WHERE salary >= 120000 ORDER BY salary DESC;"
        ),
        concepts=["WHERE", "ORDER BY"],
    ),
    _challenge(
        id="emp-manager-names",
        title="Managers & reports",
        prompt='Show each employee with their manager name (or "(exec)" when none).',
        difficulty="intermediate",
        points=70,
        database="employees",
        starter_sql=(
            "SELECT e.first_name || ' ' || e.last_name AS employee, '(manager)' AS manager "
            "FROM employees e;"
        ),
        solution_sql=(
            "SELECT e.first_name || ' ' || e.last_name AS employee, "
            "COALESCE(m.first_name || ' ' || m.last_name, '(exec)') AS manager "
            "FROM employees e LEFT JOIN employees m ON e.manager_id = m.id ORDER BY employee;"
        ),
        concepts=["SELF JOIN", "COALESCE"],
    ),
    _challenge(
        id="emp-avg-salary-dept",
        title="Above-average departments",
        prompt="Return departments whose average salary is over $100k, sorted by average salary.",
        difficulty="intermediate",
        points=75,
        database="employees",
        starter_sql=(
            "SELECT d.name AS department, AVG(e.salary) AS avg_salary FROM departments d "
            "JOIN employees e ON e.department_id = d.id GROUP BY d.name;"
        ),
        solution_sql=(
            "SELECT d.name AS department, ROUND(AVG(e.salary)) AS avg_salary FROM departments d "
            "JOIN employees e ON e.department_id = d.id GROUP BY d.name "
            "HAVING AVG(e.salary) > 100000 ORDER BY avg_salary DESC;"
        ),
        concepts=["AVG", "HAVING", "GROUP BY"],
    ),
    _challenge(
        id="emp-salary-growth",
        title="Who got the biggest raises",
        prompt=(
            "Using salary history, show employees whose latest salary is at least $10k "
            "above their first recorded salary."
        ),
        difficulty="intermediate",
        points=80,
        database="employees",
        starter_sql=(
            "SELECT e.first_name, e.last_name, MAX(s.amount) - MIN(s.amount) AS growth "
            "FROM salaries s JOIN employees e ON e.id = s.employee_id "
            "GROUP BY e.id, e.first_name, e.last_name;"
        ),
        solution_sql=(
            "SELECT e.first_name, e.last_name, MAX(s.amount) - MIN(s.amount) AS growth "
            "FROM salaries s JOIN employees e ON e.id = s.employee_id "
            "GROUP BY e.id, e.first_name, e.last_name "
            "HAVING MAX(s.amount) - MIN(s.amount) >= 10000 ORDER BY growth DESC;"
        ),
        concepts=["HAVING", "AGGREGATES"],
    ),
    _challenge(
        id="emp-window-rank",
        title="Top earners per department",
        prompt=(
            "Use a window function to rank salaries within each department and keep the "
            "top two per department."
        ),
        difficulty="advanced",
        points=90,
        database="employees",
        starter_sql=(
            "SELECT d.name AS department, e.first_name, e.salary FROM employees e "
            "JOIN departments d ON d.id = e.department_id;"
        ),
        solution_sql=(
            "SELECT department, employee, salary, salary_rank FROM ("
            "SELECT d.name AS department, e.first_name || ' ' || e.last_name AS employee, "
            "e.salary, DENSE_RANK() OVER (PARTITION BY d.id ORDER BY e.salary DESC) AS salary_rank "
            "FROM employees e JOIN departments d ON d.id = e.department_id "
            "WHERE salary IS NOT NULL) ranked "
            "WHERE salary_rank <= 2 ORDER BY department, salary_rank;"
        ),
        concepts=["WINDOW", "DENSE_RANK", "PARTITION BY"],
    ),
    _challenge(
        id="emp-above-company-avg",
        title="Beating the company average",
        prompt="Find departments whose average salary is above the overall company average.",
        difficulty="advanced",
        points=85,
        database="employees",
        starter_sql=(
            "SELECT d.name AS department, AVG(e.salary) AS avg_salary FROM employees e "
            "JOIN departments d ON e.department_id = d.id GROUP BY d.name;"
        ),
        solution_sql=(
            "WITH company AS (SELECT AVG(salary) AS avg_salary FROM employees) "
            "SELECT d.name AS department, ROUND(AVG(e.salary)) AS avg_salary FROM employees e "
            "JOIN departments d ON e.department_id = d.id GROUP BY d.name "
            "HAVING AVG(e.salary) > (SELECT avg_salary FROM company) ORDER BY avg_salary DESC;"
        ),
        concepts=["CTE", "AVG", "HAVING"],
    ),
    _challenge(
        id="eco-latest-orders",
        title="Latest orders",
        prompt="List the five most recent orders with customer names and status.",
        difficulty="beginner",
        points=50,
        database="ecommerce",
        starter_sql=(
            "SELECT o.id, c.name, o.status, o.order_date FROM orders o "
            "JOIN customers c ON c.id = o.customer_id ORDER BY o.order_date DESC LIMIT 5;"
        ),
        solution_sql=(
            "SELECT o.id, c.name AS customer, o.status, o.order_date FROM orders o "
            "JOIN customers c ON c.id = o.customer_id ORDER BY o.order_date DESC LIMIT 5;"
        ),
        concepts=["JOIN", "ORDER BY", "LIMIT"],
    ),
    _challenge(
        id="eco-status-count",
        title="Orders by status",
        prompt="Count how many orders are in each status.",
        difficulty="beginner",
        points=50,
        database="ecommerce",
        starter_sql="SELECT status, COUNT(*) AS total FROM orders GROUP BY status;",
        solution_sql="SELECT status, COUNT(*) AS total FROM orders GROUP BY status ORDER BY total DESC;",
        concepts=["GROUP BY", "COUNT"],
    ),
    _challenge(
        id="eco-expensive-products",
        title="Premium products",
        prompt="Show products priced above $50, highest price first.",
        difficulty="beginner",
        points=55,
        database="ecommerce",
        starter_sql="SELECT name, category, price FROM products WHERE price > 50 ORDER BY price DESC;",
        solution_sql="SELECT name, category, price FROM products WHERE price > 50 ORDER BY price DESC;",
        concepts=["WHERE", "ORDER BY"],
    ),
    _challenge(
        id="eco-new-customers",
        title="Recent signups",
        prompt="Return customers who joined in 2023 or later with their country.",
        difficulty="beginner",
        points=55,
        database="ecommerce",
        starter_sql=(
            "SELECT name, country, signup_date FROM customers WHERE signup_date >= '2023-01-01';"
        ),
        solution_sql=(
            "SELECT name, country, signup_date FROM customers "
            "WHERE signup_date >= '2023-01-01' ORDER BY signup_date;"
        ),
        concepts=["DATE", "FILTERS"],
    ),
    _challenge(
        id="eco-revenue-per-customer",
        title="Revenue per customer",
        prompt="Calculate total revenue per customer using order items.",
        difficulty="intermediate",
        points=75,
        database="ecommerce",
        starter_sql=(
            "SELECT c.name, SUM(oi.quantity * oi.unit_price) AS revenue FROM customers c "
            "JOIN orders o ON o.customer_id = c.id JOIN order_items oi ON oi.order_id = o.id "
            "GROUP BY c.name;"
        ),
        solution_sql=(
            "SELECT c.name AS customer, ROUND(SUM(oi.quantity * oi.unit_price), 2) AS revenue "
            "FROM customers c JOIN orders o ON o.customer_id = c.id "
            "JOIN order_items oi ON oi.order_id = o.id GROUP BY c.name ORDER BY revenue DESC;"
        ),
        concepts=["SUM", "JOIN", "GROUP BY"],
    ),
    _challenge(
        id="eco-monthly-orders",
        title="Monthly order volume",
        prompt="Count orders per month (YYYY-MM).",
        difficulty="intermediate",
        points=70,
        database="ecommerce",
        starter_sql=(
            "SELECT date_trunc('month', order_date) AS month, COUNT(*) FROM orders GROUP BY month;"
        ),
        solution_sql=(
            "SELECT strftime(order_date, '%Y-%m') AS month, COUNT(*) AS orders "
            "FROM orders GROUP BY 1 ORDER BY 1;"
        ),
        concepts=["DATE_TRUNC", "GROUP BY", "FORMAT"],
    ),
    _challenge(
        id="eco-top-categories",
        title="Top categories by items sold",
        prompt="Sum quantities sold per product category and order by volume.",
        difficulty="intermediate",
        points=75,
        database="ecommerce",
        starter_sql=(
            "SELECT p.category, SUM(oi.quantity) AS items_sold FROM order_items oi "
            "JOIN products p ON p.id = oi.product_id GROUP BY p.category;"
        ),
        solution_sql=(
            "SELECT p.category, SUM(oi.quantity) AS items_sold FROM order_items oi "
            "JOIN products p ON p.id = oi.product_id GROUP BY p.category ORDER BY items_sold DESC;"
        ),
        concepts=["SUM", "GROUP BY", "JOIN"],
    ),
    _challenge(
        id="eco-repeat-customers",
        title="Repeat customers",
        prompt="Find customers with at least two distinct orders.",
        difficulty="advanced",
        points=85,
        database="ecommerce",
        starter_sql=(
            "SELECT c.name, COUNT(DISTINCT o.id) AS orders FROM customers c "
            "JOIN orders o ON o.customer_id = c.id GROUP BY c.name;"
        ),
        solution_sql=(
            "SELECT c.name, COUNT(DISTINCT o.id) AS orders FROM customers c "
            "JOIN orders o ON o.customer_id = c.id GROUP BY c.name "
            "HAVING COUNT(DISTINCT o.id) >= 2 ORDER BY orders DESC;"
        ),
        concepts=["HAVING", "COUNT DISTINCT"],
    ),
    _challenge(
        id="eco-high-value-orders",
        title="Above-average order totals",
        prompt="Compute order totals and return those above the average order total.",
        difficulty="advanced",
        points=90,
        database="ecommerce",
        starter_sql=(
            "SELECT o.id, SUM(oi.quantity * oi.unit_price) AS total FROM orders o "
            "JOIN order_items oi ON oi.order_id = o.id GROUP BY o.id;"
        ),
        solution_sql=(
            "WITH totals AS (SELECT o.id, SUM(oi.quantity * oi.unit_price) AS total "
            "FROM orders o JOIN order_items oi ON oi.order_id = o.id GROUP BY o.id) "
            "SELECT o.id, c.name AS customer, total FROM totals t "
            "JOIN orders o ON o.id = t.id JOIN customers c ON c.id = o.customer_id "
            "WHERE total > (SELECT AVG(total) FROM totals) ORDER BY total DESC;"
        ),
        concepts=["CTE", "AVG", "JOIN"],
    ),
    _challenge(
        id="eco-top-products-revenue",
        title="Top products by revenue",
        prompt="Use a window function to rank products by revenue and keep the top 3.",
        difficulty="advanced",
        points=85,
        database="ecommerce",
        starter_sql=(
            "SELECT p.name, SUM(oi.quantity * oi.unit_price) AS revenue FROM order_items oi "
            "JOIN products p ON p.id = oi.product_id GROUP BY p.name;"
        ),
        solution_sql=(
            "WITH product_revenue AS (SELECT p.name, SUM(oi.quantity * oi.unit_price) AS revenue "
            "FROM order_items oi JOIN products p ON p.id = oi.product_id GROUP BY p.name), "
            "ranked AS (SELECT name, revenue, DENSE_RANK() OVER (ORDER BY revenue DESC) "
            "AS revenue_rank FROM product_revenue) "
            "SELECT name, revenue, revenue_rank FROM ranked WHERE revenue_rank <= 3 "
            "ORDER BY revenue_rank;"
        ),
        concepts=["WINDOW", "DENSE_RANK", "SUM"],
    ),
    _challenge(
        id="mov-top-rated",
        title="Top-rated films",
        prompt="List movies rated 8.0 or higher, sorted by rating.",
        difficulty="beginner",
        points=50,
        database="movies",
        starter_sql="SELECT title, rating FROM movies WHERE rating >= 8 ORDER BY rating DESC;",
        solution_sql="SELECT title, rating FROM movies WHERE rating >= 8 ORDER BY rating DESC;",
        concepts=["FILTER", "ORDER BY"],
    ),
    _challenge(
        id="mov-genre-count",
        title="Films per genre",
        prompt="Count how many movies exist for each genre.",
        difficulty="beginner",
        points=50,
        database="movies",
        starter_sql="SELECT genre, COUNT(*) AS movie_count FROM movies GROUP BY genre;",
        solution_sql=(
            "SELECT genre, COUNT(*) AS movie_count FROM movies GROUP BY genre "
            "ORDER BY movie_count DESC;"
        ),
        concepts=["GROUP BY", "COUNT"],
    ),
    _challenge(
        id="mov-inception-cast",
        title="Inception cast list",
        prompt="Show actors and roles for the movie 'Inception' ordered by actor name.",
        difficulty="beginner",
        points=55,
        database="movies",
        starter_sql=(
            "SELECT a.name, r.role FROM roles r JOIN actors a ON a.id = r.actor_id "
            "JOIN movies m ON m.id = r.movie_id WHERE m.title = 'Inception';"
        ),
        solution_sql=(
            "SELECT a.name, r.role FROM roles r JOIN actors a ON a.id = r.actor_id "
            "JOIN movies m ON m.id = r.movie_id WHERE m.title = 'Inception' ORDER BY a.name;"
        ),
        concepts=["JOIN", "WHERE"],
    ),
    _challenge(
        id="mov-recent-films",
        title="Recent releases",
        prompt="Return movies released in or after 2018 sorted by year descending.",
        difficulty="beginner",
        points=55,
        database="movies",
        starter_sql=(
            "SELECT title, released_year FROM movies WHERE released_year >= 2018 "
            "ORDER BY released_year DESC;"
        ),
        solution_sql=(
            "SELECT title, released_year FROM movies WHERE released_year >= 2018 "
            "ORDER BY released_year DESC;"
        ),
        concepts=["FILTER", "ORDER BY"],
    ),
    _challenge(
        id="mov-director-filmography",
        title="Directors with multiple films",
        prompt="List directors who have at least two films in the catalog.",
        difficulty="intermediate",
        points=70,
        database="movies",
        starter_sql=(
            "SELECT d.name, COUNT(md.movie_id) AS films FROM directors d "
            "JOIN movie_directors md ON md.director_id = d.id GROUP BY d.name;"
        ),
        solution_sql=(
            "SELECT d.name, COUNT(md.movie_id) AS films FROM directors d "
            "JOIN movie_directors md ON md.director_id = d.id GROUP BY d.name "
            "HAVING COUNT(md.movie_id) >= 2 ORDER BY films DESC;"
        ),
        concepts=["HAVING", "JOIN", "COUNT"],
    ),
    _challenge(
        id="mov-actors-multi",
        title="Frequent actors",
        prompt="Find actors who appear in more than one movie.",
        difficulty="intermediate",
        points=70,
        database="movies",
        starter_sql=(
            "SELECT a.name, COUNT(DISTINCT r.movie_id) AS appearances FROM actors a "
            "JOIN roles r ON r.actor_id = a.id GROUP BY a.name;"
        ),
        solution_sql=(
            "SELECT a.name, COUNT(DISTINCT r.movie_id) AS appearances FROM actors a "
            "JOIN roles r ON r.actor_id = a.id GROUP BY a.name "
            "HAVING COUNT(DISTINCT r.movie_id) > 1 ORDER BY appearances DESC, a.name;"
        ),
        concepts=["COUNT DISTINCT", "HAVING"],
    ),
    _challenge(
        id="mov-director-top-rated",
        title="Top film per director",
        prompt="Use a window function to return each director's highest-rated movie.",
        difficulty="intermediate",
        points=80,
        database="movies",
        starter_sql=(
            "SELECT d.name, m.title, m.rating FROM directors d "
            "JOIN movie_directors md ON md.director_id = d.id JOIN movies m ON m.id = md.movie_id;"
        ),
        solution_sql=(
            "WITH ranked AS (SELECT d.name, m.title, m.rating, "
            "DENSE_RANK() OVER (PARTITION BY d.id ORDER BY m.rating DESC) AS rnk "
            "FROM directors d JOIN movie_directors md ON md.director_id = d.id "
            "JOIN movies m ON m.id = md.movie_id) "
            "SELECT name, title, rating FROM ranked WHERE rnk = 1 ORDER BY rating DESC;"
        ),
        concepts=["WINDOW", "DENSE_RANK", "PARTITION BY"],
    ),
    _challenge(
        id="mov-co-actors",
        title="Co-actors with Mara Steele",
        prompt="List distinct co-actors who have appeared with Mara Steele.",
        difficulty="advanced",
        points=85,
        database="movies",
        starter_sql=(
            "SELECT DISTINCT a2.name FROM roles r1 JOIN roles r2 ON r1.movie_id = r2.movie_id "
            "JOIN actors a1 ON a1.id = r1.actor_id JOIN actors a2 ON a2.id = r2.actor_id "
            "WHERE a1.name = 'Mara Steele';"
        ),
        solution_sql=(
            "SELECT DISTINCT a2.name AS co_actor FROM roles r1 "
            "JOIN roles r2 ON r1.movie_id = r2.movie_id AND r1.actor_id <> r2.actor_id "
            "JOIN actors a1 ON a1.id = r1.actor_id JOIN actors a2 ON a2.id = r2.actor_id "
            "WHERE a1.name = 'Mara Steele' ORDER BY co_actor;"
        ),
        concepts=["SELF JOIN", "DISTINCT"],
    ),
    _challenge(
        id="mov-genre-delta",
        title="Genre rating delta",
        prompt="Compare each genre's average rating to the overall average rating.",
        difficulty="advanced",
        points=90,
        database="movies",
        starter_sql="SELECT genre, AVG(rating) AS avg_rating FROM movies GROUP BY genre;",
        solution_sql=(
            "WITH genre_avg AS (SELECT genre, AVG(rating) AS avg_rating FROM movies GROUP BY genre), "
            "overall AS (SELECT AVG(rating) AS avg_rating FROM movies) "
            "SELECT g.genre, ROUND(g.avg_rating, 2) AS genre_rating, "
            "ROUND(g.avg_rating - o.avg_rating, 2) AS delta FROM genre_avg g, overall o "
            "ORDER BY delta DESC;"
        ),
        concepts=["CTE", "AVG", "CROSS JOIN"],
    ),
    _challenge(
        id="mov-boxoffice-rank",
        title="Box office ranking",
        prompt="Rank movies by box office revenue using a window function.",
        difficulty="advanced",
        points=85,
        database="movies",
        starter_sql="SELECT title, box_office FROM movies;",
        solution_sql=(
            "SELECT title, box_office, RANK() OVER (ORDER BY box_office DESC) AS revenue_rank "
            "FROM movies ORDER BY revenue_rank;"
        ),
        concepts=["RANK", "WINDOW"],
    ),
]

_BY_ID: Dict[str, Challenge] = {challenge.id: challenge for challenge in CHALLENGES}


def get_challenge(challenge_id: str) -> Challenge:
    """Look up a challenge by id."""
    try:
        return _BY_ID[challenge_id]
    except KeyError:
        raise UnknownChallengeError(challenge_id) from None


def filter_challenges(
    difficulty: Optional[Union[Difficulty, str]] = None,
    concepts: Optional[Iterable[str]] = None,
    database: Optional[Union[SchemaId, str]] = None,
) -> List[Challenge]:
    """
    Filter the catalog.

    A challenge matches when its difficulty (and database) equals the requested
    one, if given, and when it covers at least one of the requested concepts.
    Concept matching is case-insensitive. An empty concept selection matches all.
    """
    wanted_difficulty = Difficulty(difficulty) if difficulty is not None else None
    wanted_database = SchemaId(database) if database is not None else None
    wanted_concepts = {concept.upper() for concept in concepts or ()}

    matched: List[Challenge] = []
    for challenge in CHALLENGES:
        if wanted_difficulty is not None and challenge.difficulty != wanted_difficulty:
            continue
        if wanted_database is not None and challenge.database != wanted_database:
            continue
        if wanted_concepts and not wanted_concepts.intersection(
            concept.upper() for concept in challenge.concepts
        ):
            continue
        matched.append(challenge)
    return matched


def concept_counts(challenges: Optional[Iterable[Challenge]] = None) -> Dict[str, int]:
    """Count how many challenges exercise each concept, sorted by concept name."""
    counts: Counter[str] = Counter()
    for challenge in CHALLENGES if challenges is None else challenges:
        counts.update(challenge.concepts)
    return dict(sorted(counts.items()))


__all__ = [
    "CHALLENGES",
    "get_challenge",
    "filter_challenges",
    "concept_counts",
]
