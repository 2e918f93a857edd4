from .students import student_list, student_detail, my_results, student_performance
