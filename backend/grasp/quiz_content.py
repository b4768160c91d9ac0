DEMO_QUIZZES = [
    {
        "slug": "cs101-lecture3",
        "title": "CS101 Lecture 3",
        "course": "CS101",
        "week": "week3",
        "time_limit_minutes": 30,
        "questions": [
            {
                "prompt": "What is the time complexity of binary search algorithm?",
                "options": {"A": "O(n)", "B": "O(log n)", "C": "O(n²)", "D": "O(1)"},
                "answer": "B"
            },
            {
                "prompt": "Which data structure uses LIFO principle?",
                "options": {
                    "A": {"text": "Queue", "feedback": "A queue is first in, first out."},
                    "B": {"text": "Stack", "feedback": "Correct: the last item pushed is popped first."},
                    "C": {"text": "Array"},
                    "D": {"text": "Linked List"}
                },
                "answer": "B"
            },
            {
                "prompt": "What is the worst-case time complexity of quicksort?",
                "options": {"A": "O(n log n)", "B": "O(n²)", "C": "O(n)", "D": "O(log n)"},
                "answer": "B"
            },
            {
                "prompt": "Which sorting algorithm is stable?",
                "options": [
                    {"letter": "A", "text": "Quicksort"},
                    {"letter": "B", "text": "Heapsort"},
                    {"letter": "C", "text": "Merge sort"},
                    {"letter": "D", "text": "Selection sort"}
                ],
                "answer": "C"
            },
            {
                "prompt": "What is the space complexity of recursive binary search?",
                "options": {"A": "O(1)", "B": "O(log n)", "C": "O(n)", "D": "O(n log n)"},
                "answer": "B"
            }
        ]
    },
    {
        "slug": "math200-lecture5",
        "title": "MATH200 Lecture 5",
        "course": "MATH200",
        "week": "week5",
        "time_limit_minutes": 20,
        "questions": [
            {
                "prompt": "What is the derivative of x²?",
                "options": {"A": "x", "B": "2x", "C": "x²/2", "D": "2"},
                "answer": "B"
            },
            {
                "prompt": "What is the integral of 1/x?",
                "options": {"A": "ln|x| + C", "B": "x + C", "C": "1/x² + C", "D": "eˣ + C"},
                "answer": "A"
            },
            {
                "prompt": "What is the limit of sin(x)/x as x approaches 0?",
                "options": {"A": "0", "B": "Infinity", "C": "1", "D": "Undefined"},
                "answer": "C"
            }
        ]
    }
]
