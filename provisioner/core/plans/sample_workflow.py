"""Sample workflow definition seeded into the platform's dags folder."""

SAMPLE_WORKFLOW_FILE = "test_dag.py"

SAMPLE_WORKFLOW = '''\
from datetime import datetime, timedelta

from airflow import DAG
from airflow.operators.python import PythonOperator


def hello_world():
    print("Hello from a single-node Airflow host!")
    return "success"


default_args = {
    "owner": "airflow",
    "depends_on_past": False,
    "start_date": datetime(2024, 1, 1),
    "email_on_failure": False,
    "email_on_retry": False,
    "retries": 1,
    "retry_delay": timedelta(minutes=5),
}

dag = DAG(
    "test_dag",
    default_args=default_args,
    description="Simple test DAG",
    schedule_interval=None,  # manual trigger only
    catchup=False,
    tags=["test"],
)

task1 = PythonOperator(
    task_id="hello_world_task",
    python_callable=hello_world,
    dag=dag,
)
'''
